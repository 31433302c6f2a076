"""Source file collection and contract-file detection."""

from voyager.files.collector import FileCollector, is_test_path
from voyager.files.contract import find_contract_file

__all__ = [
    "FileCollector",
    "find_contract_file",
    "is_test_path",
]
