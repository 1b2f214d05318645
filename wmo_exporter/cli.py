"""
Export WoW WMO (World Map Object) files to OBJ + MTL + doodad placement CSV.

Usage:
    wmo-export "World/wmo/Dungeon/KL_Orgrimmar/Orgrimmar.wmo" --data-dir ./Data
    wmo-export Foo.wmo Bar.wmo --data-dir ./Data --listfile listfile.csv --destination wmos
    wmo-export Foo.wmo --data-dir ./Data --doodad-set 1
"""

import argparse
import os
import sys
import traceback
from pathlib import Path

from .datasource import LooseDataSource
from .doodads import ALL_DOODAD_SETS
from .exporter import ExportAborted, export_wmo

DEFAULT_DATA_DIR = Path("Data")
DEFAULT_OUTPUT_DIR = Path(os.environ.get("WMO_EXPORT_OUTDIR", "export"))


def build_parser():
    parser = argparse.ArgumentParser(description="Export WoW WMO buildings to OBJ")
    parser.add_argument("wmo", nargs="+",
                        help="WMO root file path(s) inside the data directory")
    parser.add_argument("--data-dir", default=str(DEFAULT_DATA_DIR),
                        help="Directory with extracted client files")
    parser.add_argument("--listfile", default=None,
                        help="CSV listfile (fileDataID;path) for resolving file IDs")
    parser.add_argument("--output-dir", default=str(DEFAULT_OUTPUT_DIR),
                        help="Output root directory (default: $WMO_EXPORT_OUTDIR or ./export)")
    parser.add_argument("--destination", default=None,
                        help="Write everything to this subdirectory of the output root "
                             "instead of mirroring the game path")
    parser.add_argument("--doodad-set", type=int, default=ALL_DOODAD_SETS,
                        help="Only export this doodad set index (default: all sets)")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    data_dir = Path(args.data_dir)
    output_dir = Path(args.output_dir)

    print(f"Indexing data directory {data_dir}...")
    source = LooseDataSource(data_dir, args.listfile)

    exported = 0
    failed = 0

    print(f"\n== Exporting {len(args.wmo)} WMO files ==\n")

    for i, wmo_path in enumerate(args.wmo):
        print(f"[{i + 1}/{len(args.wmo)}] {wmo_path}")
        try:
            paths = export_wmo(wmo_path, output_dir=output_dir,
                               destination_override=args.destination,
                               doodad_set=args.doodad_set, data_source=source)
            print(f"  OK: {paths['obj']}")
            exported += 1
        except ExportAborted as e:
            print(f"  ERROR: {e}")
            failed += 1
        except Exception as e:
            print(f"  ERROR: {e}")
            traceback.print_exc()
            failed += 1

    print(f"\n== Done ==")
    print(f"  Exported: {exported}/{len(args.wmo)} WMOs")
    print(f"  Failed: {failed}")
    print(f"  Output: {output_dir}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
