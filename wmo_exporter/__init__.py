"""Export WoW WMO world models to OBJ/MTL with doodad placement information."""

from .doodads import ALL_DOODAD_SETS
from .exporter import ExportAborted, export_wmo

__version__ = "0.1.0"
