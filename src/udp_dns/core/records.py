"""
DNS Record Store

Static table of DNS-like records consulted by the server while it processes
lookup requests. Records are loaded once from a JSON or YAML file holding a
list of record objects in wire format.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import yaml

from .errors import InvalidPayloadShape
from .message import DNSRecord

logger = logging.getLogger(__name__)


class RecordStore:
    """Ordered, read-only collection of DNS records"""

    def __init__(self, records: Iterable[DNSRecord] = ()):
        self._records: List[DNSRecord] = list(records)

    def lookup(self, record_type: str, name: str) -> Optional[DNSRecord]:
        """Return the first record matching type and name exactly, if any"""
        for record in self._records:
            if record.record_type == record_type and record.name == name:
                return record
        return None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[DNSRecord]:
        return iter(self._records)

    @classmethod
    def from_file(cls, file_path: Optional[str]) -> "RecordStore":
        """Load records from file.

        Any failure is logged and yields an empty store, so a broken record
        file turns every lookup into a not-found answer.
        """
        if not file_path:
            logger.warning("No DNS records file configured, store is empty")
            return cls()

        try:
            records = load_records(file_path)
        except (OSError, ValueError, yaml.YAMLError, InvalidPayloadShape) as e:
            logger.error(f"Error reading DNS records file {file_path}: {e}")
            return cls()

        logger.info(f"Loaded {len(records)} DNS records from {file_path}")
        return cls(records)


def load_records(file_path: str) -> List[DNSRecord]:
    """Read a list of DNS records from a JSON or YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file does not hold a list (or is not valid JSON)
        yaml.YAMLError: If YAML parsing fails
        InvalidPayloadShape: If an entry is not a valid record object
    """
    path = Path(file_path)
    with open(path, "r", encoding="utf-8") as f:
        content = f.read()

    if path.suffix.lower() in [".yaml", ".yml"]:
        data = yaml.safe_load(content)
    else:
        data = json.loads(content)

    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"DNS records file must contain a list: {file_path}")

    return [DNSRecord.from_dict(entry) for entry in data]
