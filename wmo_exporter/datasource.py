"""
Read client files from a directory of extracted game data.

Paths inside the game use backslashes and inconsistent casing, so lookups are
done against a lower-cased index of every file under the data directory.
Numeric file identifiers are resolved through an optional listfile
(``<fileDataID>;<path>`` per line).
"""

from pathlib import Path


def normalize_game_path(filepath):
    """Lower-case a game path and use forward slashes."""
    return str(filepath).replace("\\", "/").strip("/").lower()


def load_listfile(listfile_path):
    """Parse a ``<fileDataID>;<path>`` listfile into a dict."""
    mapping = {}
    with open(listfile_path, encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line or ";" not in line:
                continue
            file_id, path = line.split(";", 1)
            if not file_id.isdigit():
                continue
            mapping[int(file_id)] = path
    return mapping


class LooseDataSource:
    """Indexes a data directory once and serves files by game path or file ID."""
    def __init__(self, data_dir, listfile=None):
        self.data_dir = Path(data_dir)
        self.listfile = {}
        self.index = {}  # normalized game path -> Path on disk

        if listfile is not None:
            self.listfile = load_listfile(listfile)
            print(f"Loaded {len(self.listfile)} listfile entries")

        if self.data_dir.is_dir():
            for path in self.data_dir.rglob("*"):
                if path.is_file():
                    rel = path.relative_to(self.data_dir).as_posix()
                    self.index[rel.lower()] = path
        print(f"Indexed {len(self.index)} files under {self.data_dir}")

    def resolve_path(self, file_ref):
        """Return the game path for a path string or a numeric file ID (or None)."""
        if isinstance(file_ref, int):
            return self.listfile.get(file_ref)
        if isinstance(file_ref, str) and file_ref.isdigit():
            return self.listfile.get(int(file_ref))
        return file_ref

    def read_file(self, file_ref):
        """Return the bytes of a file, or None if it is not in the data directory."""
        path = self.resolve_path(file_ref)
        if path is None:
            return None
        disk_path = self.index.get(normalize_game_path(path))
        if disk_path is None:
            return None
        return disk_path.read_bytes()
