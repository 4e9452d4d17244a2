from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A single environment setting a client needs before it can boot.

    Attributes:
        env_key (str): Key of the setting without the "<TYPE>_<ENGINE>_" prefix (e.g. "BASE_URL").
        val_type (str): Expected value type: "string", "number", "bool" or "list".
        default (str | int | bool | list | None): Value used when the variable is unset.
            None marks the setting as required.
    """

    env_key: str
    val_type: str
    default: str | int | bool | list | None = None
