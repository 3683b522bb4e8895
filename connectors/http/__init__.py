from src.engine.base import ConnectorDefinition

from .config import DESTINATION_PARAMETERS, SOURCE_PARAMETERS
from .destination import HttpDestination
from .source import HttpSource

HTTP_CONNECTOR = ConnectorDefinition(
    connector_key="http",
    new_source=HttpSource,
    new_destination=HttpDestination,
    source_parameters=SOURCE_PARAMETERS,
    destination_parameters=DESTINATION_PARAMETERS,
)

__all__ = ["HTTP_CONNECTOR", "HttpDestination", "HttpSource"]
