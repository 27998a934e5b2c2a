"""
Application Initialization
==========================
This module assembles the engine and its collaborators.

Why is this file needed?
------------------------
It acts as the "Dependency Injection" root. It:
1. Configures logging for the package.
2. Chooses the persistence gateway (HDF5 file or in-memory).
3. Instantiates the ChangeBus, OperationRegistry and CommandHistory.
4. Passes them into the CalculationEngine, so no module holds global state.
"""
from __future__ import annotations

import logging
from typing import Optional, Union

from calculatorcore.config import CALCULATION_LOG_LIMIT, DEFAULT_STORAGE_PATH, UNDO_LIMIT
from calculatorcore.controller.bus import ChangeBus
from calculatorcore.controller.engine import CalculationEngine
from calculatorcore.controller.history import CommandHistory
from calculatorcore.logging_config import setup_logging
from calculatorcore.model.io import HDF5Repository, InMemoryRepository, PersistenceGateway
from calculatorcore.model.operations import OperationRegistry

logger = logging.getLogger(__name__)


def create_gateway(storage_path: Optional[str] = None, in_memory: bool = False) -> PersistenceGateway:
    if in_memory:
        return InMemoryRepository()
    return HDF5Repository(storage_path or DEFAULT_STORAGE_PATH)


def create_engine(
    storage_path: Optional[str] = None,
    log_level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    in_memory: bool = False,
    configure_logging: bool = True,
) -> CalculationEngine:
    """Create a fully wired CalculationEngine."""
    if configure_logging:
        setup_logging(level=log_level, log_file=log_file)

    gateway = create_gateway(storage_path, in_memory=in_memory)
    engine = CalculationEngine(
        gateway=gateway,
        bus=ChangeBus(),
        registry=OperationRegistry(),
        history=CommandHistory(limit=UNDO_LIMIT),
        log_limit=CALCULATION_LOG_LIMIT,
    )
    logger.info(f"Calculator engine ready ({type(gateway).__name__}).")
    return engine
