from tollgate.vaults.jsonl import JsonlFileVault
from tollgate.vaults.memory import MemoryVault

__all__ = ["JsonlFileVault", "MemoryVault"]
