import hashlib
import json
import os
import re
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path

from loguru import logger

from common.errors import StorageError

INFO_FILE = "info.json"
_DATASET_NAME = re.compile(r"^(\d{4}-\d{2}-\d{2})\.json$")


def _file_mode() -> int:
    """Mode a plain open() would create under the current umask."""
    mask = os.umask(0)
    os.umask(mask)
    return 0o666 & ~mask


def atomic_write_text(path: Path, text: str) -> None:
    """Write to a temp file beside `path`, then rename it over `path`."""
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            delete=False,
            dir=str(path.parent),
            prefix=path.name,
            suffix=".tmp",
            newline="\n",
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_path, _file_mode())
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise StorageError(path, str(e)) from e


def dumps(data) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2) + "\n"


class Store:
    """One JSON file per report date, named YYYY-MM-DD.json."""

    def __init__(self, path):
        self.path = Path(path)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(self.path, str(e)) from e
        self.info_path = self.path / INFO_FILE

    def path_for(self, day: date) -> Path:
        return self.path / f"{day.isoformat()}.json"

    def synced_dates(self) -> set[date]:
        """Dates with a finished output file. Temp files and info.json don't count."""
        out = set()
        for p in self.path.iterdir():
            m = _DATASET_NAME.match(p.name)
            if not m or not p.is_file():
                continue
            try:
                out.add(date.fromisoformat(m.group(1)))
            except ValueError:
                logger.debug(f"Ignoring {p.name}")
        return out

    def contains(self, day: date) -> bool:
        return self.path_for(day).is_file()

    def get_dataset(self, day: date) -> dict:
        return json.loads(self.path_for(day).read_text(encoding="utf-8"))

    def put_dataset(self, dataset: dict) -> Path:
        day = date.fromisoformat(dataset["date"])
        out = self.path_for(day)
        text = dumps(dataset)
        atomic_write_text(out, text)
        try:
            self._record(dataset, text)
        except StorageError as e:
            logger.warning(f"Wrote {out} but could not update {INFO_FILE}: {e}")
        return out

    def load_info(self) -> dict:
        if not self.info_path.exists():
            return {}
        try:
            return json.loads(self.info_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable {self.info_path}, starting a new one: {e}")
            return {}

    def _record(self, dataset: dict, text: str) -> None:
        info = self.load_info()
        info[dataset["date"]] = {
            "source_url": dataset.get("source_url"),
            "rows": len(dataset.get("rows", [])),
            "sha256": hashlib.sha256(text.encode("utf-8")).hexdigest(),
            "synced_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        atomic_write_text(self.info_path, dumps(dict(sorted(info.items()))))
