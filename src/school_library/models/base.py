"""Base model for payloads exchanged with REST clients."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """
    snake_case attributes in Python, camelCase keys on the wire.

    Input is accepted under either name. Output is camelCase only when
    dumped with ``by_alias=True``, which the REST envelope does; MCP
    payloads keep the attribute names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
