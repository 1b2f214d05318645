"""
WMO to OBJ export pipeline.

Writes ``<name>.obj``, ``<name>.mtl`` and ``<name>_ModelPlacementInformation.csv``
for one WMO, plus a PNG per material texture and an OBJ per placed doodad.
"""

from pathlib import Path, PureWindowsPath

from .batches import map_render_batches
from .doodads import ALL_DOODAD_SETS, export_doodads
from .geometry import assemble_groups, has_geometry
from .m2 import M2Exporter
from .materials import TextureExporter, resolve_materials
from .reader import load_wmo
from .writers import write_manifest, write_mtl, write_obj


class ExportAborted(Exception):
    """The current WMO cannot be exported; other files in a batch are unaffected."""


def print_progress(percent, message):
    print(f"[{percent:3d}%] {message}")


def skip_texture(texture_ref, dest_path):
    print(f"  No data source, not exporting texture {texture_ref}")


def skip_dependent_model(identifier, output_dir):
    print(f"  No data source, not exporting doodad {identifier}")
    return False


def export_paths(wmo_path, output_dir, destination_override=None):
    """
    Work out where the export of ``wmo_path`` goes.
    Returns dict with ``dir``, ``obj``, ``mtl`` and ``manifest`` paths.
    """
    src = PureWindowsPath(wmo_path)
    if destination_override is None:
        dest_dir = Path(output_dir).joinpath(*src.parent.parts)
        base = src.stem
    else:
        dest_dir = Path(output_dir) / destination_override
        base = src.stem.lower()

    return {
        "dir": dest_dir,
        "obj": dest_dir / (base + ".obj"),
        "mtl": dest_dir / (base + ".mtl"),
        "manifest": dest_dir / (src.stem.replace(" ", "") + "_ModelPlacementInformation.csv"),
    }


def export_wmo(wmo_path, wmo=None, *, output_dir, destination_override=None,
               doodad_set=ALL_DOODAD_SETS, data_source=None, export_texture=None,
               export_dependent_model=None, progress=None):
    """
    Export one WMO.

    wmo_path:   game path of the root file, used for output naming
    wmo:        already decoded WMO dict; read from data_source when None
    doodad_set: index of the only doodad set to export, or ALL_DOODAD_SETS
    export_texture(texture_ref, dest_path) and
    export_dependent_model(identifier, output_dir) -> bool default to the
    data-source backed exporters.

    Returns the dict of written paths. Raises ExportAborted when the WMO
    cannot be read or has no materials (the manifest may already be written).
    """
    if progress is None:
        progress = print_progress
    if export_texture is None:
        export_texture = TextureExporter(data_source) if data_source is not None else skip_texture
    if export_dependent_model is None:
        if data_source is not None:
            export_dependent_model = M2Exporter(data_source)
        else:
            export_dependent_model = skip_dependent_model

    print("Loading WMO file..")
    progress(5, "Reading WMO..")

    if wmo is None:
        if data_source is None:
            raise ExportAborted(f"No data source to read {wmo_path} from")
        wmo = load_wmo(data_source, wmo_path)
        if wmo is None:
            raise ExportAborted(f"Could not read {wmo_path}")

    progress(30, "Reading WMO..")

    groups, total_vertices = assemble_groups(wmo)
    print(f"  {total_vertices} vertices in {sum(1 for g in groups if has_geometry(g))} groups")

    paths = export_paths(wmo_path, output_dir, destination_override)
    paths["dir"].mkdir(parents=True, exist_ok=True)

    progress(55, "Exporting doodads..")

    rows = export_doodads(wmo, paths["dir"], export_dependent_model, doodad_set)
    write_manifest(paths["manifest"], rows)
    print(f"  {len(rows)} doodad placements written to {paths['manifest'].name}")

    progress(65, "Exporting textures..")

    if not wmo.get("materials"):
        print("Materials empty")
        raise ExportAborted(f"{wmo_path} has no materials")

    materials = resolve_materials(wmo, paths["dir"], export_texture)
    write_mtl(paths["mtl"], materials)

    progress(75, "Exporting model..")

    batches = map_render_batches(groups, materials, wmo)
    print(f"  {len(batches)} render batches, {sum(b['numFaces'] for b in batches)} triangles")

    progress(95, "Writing files..")

    write_obj(paths["obj"], wmo_path, paths["mtl"].name, groups, materials)
    print("Done exporting WMO file!")
    return paths
