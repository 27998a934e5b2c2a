"""
Input/Output Manager (Persistence Gateway)
Handles saving and loading the durable part of the engine: the memory
register and the calculation log.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from importlib.metadata import version, PackageNotFoundError
from typing import Any, Dict, Optional, Tuple

import h5py
import numpy as np

from calculatorcore.model.state import CalculationLogEntry

# Get module logger
logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("calculatorcore")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

# HDF5 attributes are limited to 64KB; larger payloads go into a dataset
_ATTRIBUTE_SIZE_LIMIT = 60000


@dataclass(frozen=True)
class Snapshot:
    """Durable engine state. Must stay JSON-compatible via to_dict()."""
    memory_value: float = 0.0
    calculation_log: Tuple[CalculationLogEntry, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory_value": float(self.memory_value),
            "calculation_log": [entry.to_dict() for entry in self.calculation_log],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Snapshot:
        """
        Rebuild a snapshot, keeping whatever is usable.
        A bad memory value falls back to 0, malformed log entries are dropped.
        """
        try:
            memory_value = float(data.get("memory_value", 0.0))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid stored memory value: {data.get('memory_value')!r}")
            memory_value = 0.0
        if not np.isfinite(memory_value):
            memory_value = 0.0

        entries = []
        raw_log = data.get("calculation_log") or []
        if not isinstance(raw_log, list):
            logger.warning("Stored calculation log is not a list, ignoring it.")
            raw_log = []
        for raw in raw_log:
            try:
                entries.append(CalculationLogEntry.from_dict(raw))
            except ValueError as e:
                logger.warning(f"Dropping log entry: {e}")

        return Snapshot(memory_value=memory_value, calculation_log=tuple(entries))


class PersistenceGateway(ABC):
    """
    Load/save capability consumed by the engine.

    Implementations must not raise: a failed load returns None, a failed
    save or clear returns False.
    """

    @abstractmethod
    def load(self) -> Optional[Snapshot]:
        pass

    @abstractmethod
    def save(self, snapshot: Snapshot) -> bool:
        pass

    @abstractmethod
    def clear(self) -> bool:
        pass


class InMemoryRepository(PersistenceGateway):
    """Keeps the last saved snapshot as a plain dict for the process lifetime."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Optional[Dict[str, Any]] = copy.deepcopy(initial)
        self.save_count = 0

    @property
    def data(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data)

    def load(self) -> Optional[Snapshot]:
        if self._data is None:
            return None
        try:
            return Snapshot.from_dict(self._data)
        except Exception as e:
            logger.error(f"Failed to load in-memory snapshot: {e}")
            return None

    def save(self, snapshot: Snapshot) -> bool:
        try:
            # Round-trip through JSON so nothing non-serializable slips in
            self._data = json.loads(json.dumps(snapshot.to_dict()))
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to save snapshot: {e}")
            return False
        self.save_count += 1
        return True

    def clear(self) -> bool:
        self._data = None
        return True


class HDF5Repository(PersistenceGateway):
    """
    Stores the snapshot in a small HDF5 file.

    Layout:
        attrs["version"]              package version that wrote the file
        attrs["memory_value"]         float
        attrs["calculation_log_json"] JSON list, or
        dataset "calculation_log"     opaque bytes when the JSON is too large
    """

    def __init__(self, filepath: str) -> None:
        self.filepath = filepath

    def load(self) -> Optional[Snapshot]:
        if not os.path.exists(self.filepath):
            logger.debug(f"No state file at {self.filepath}, starting fresh.")
            return None

        try:
            if not h5py.is_hdf5(self.filepath):
                logger.error(f"File '{self.filepath}' is not a valid HDF5 file.")
                return None

            with h5py.File(self.filepath, "r") as f:
                memory_value = f.attrs.get("memory_value", 0.0)
                if hasattr(memory_value, "item"):
                    memory_value = memory_value.item()

                log_json = None
                if "calculation_log" in f:
                    # Large data stored as dataset
                    log_json = bytes(f["calculation_log"][()]).decode("utf-8")
                elif "calculation_log_json" in f.attrs:
                    log_json = f.attrs["calculation_log_json"]
                    if isinstance(log_json, bytes):
                        log_json = log_json.decode("utf-8")

            calculation_log = json.loads(log_json) if log_json else []
            snapshot = Snapshot.from_dict({
                "memory_value": memory_value,
                "calculation_log": calculation_log,
            })
            logger.info(f"Loaded state from {self.filepath} ({len(snapshot.calculation_log)} log entries).")
            return snapshot

        except Exception as e:
            logger.exception(f"Failed to load state: {e}")
            return None

    def save(self, snapshot: Snapshot) -> bool:
        directory = os.path.dirname(os.path.abspath(self.filepath))
        temp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            data = snapshot.to_dict()
            log_json = json.dumps(data["calculation_log"])

            # Write next to the target, then swap, so a crash never leaves half a file
            fd, temp_path = tempfile.mkstemp(suffix=".h5", dir=directory)
            os.close(fd)
            with h5py.File(temp_path, "w") as f:
                f.attrs["version"] = APP_VERSION
                f.attrs["memory_value"] = data["memory_value"]

                if len(log_json) > _ATTRIBUTE_SIZE_LIMIT:
                    logger.debug(f"Calculation log is large ({len(log_json)} bytes), using dataset")
                    f.create_dataset("calculation_log", data=np.void(log_json.encode("utf-8")))
                else:
                    f.attrs["calculation_log_json"] = log_json

            os.replace(temp_path, self.filepath)
            temp_path = None
            logger.debug(f"State saved to: {self.filepath}")
            return True

        except Exception as e:
            logger.exception(f"Failed to save state: {e}")
            return False

        finally:
            if temp_path and os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError as e:
                    logger.warning(f"Could not delete temp file '{temp_path}': {e}")

    def clear(self) -> bool:
        try:
            if os.path.exists(self.filepath):
                os.remove(self.filepath)
                logger.info(f"Deleted state file: {self.filepath}")
            return True
        except OSError as e:
            logger.warning(f"Could not delete state file '{self.filepath}': {e}")
            return False
