from shared.helper.HelperConfig import HelperConfig
from shared.clients.catalog.CatalogClientInterface import CatalogClientInterface


class CatalogClientManager:
    """
    Manager class to instantiate the configured catalog client.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the catalog engine name from ENV configuration.

        Returns:
            str: Capitalised engine name (e.g. "Supabase").

        Raises:
            ValueError: If CATALOG_ENGINE is not set or empty.
        """
        engine = self.helper_config.get_string_val("CATALOG_ENGINE")
        if not engine:
            raise ValueError("No catalog engine specified in configuration (CATALOG_ENGINE).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> CatalogClientInterface:
        """
        Instantiates the catalog client for the configured engine.

        Returns:
            CatalogClientInterface: The instantiated client.

        Raises:
            ValueError: If the engine is unsupported or cannot be imported.
        """
        engine = self._get_engine_from_env()
        class_name = f"CatalogClient{engine}"
        try:
            module = __import__(
                f"shared.clients.catalog.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported catalog engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated catalog client for engine: %s", engine)
        return client

    def get_client(self) -> CatalogClientInterface:
        """
        Returns the instantiated catalog client.

        Returns:
            CatalogClientInterface: The catalog client instance.
        """
        return self.client
