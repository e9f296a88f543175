# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Logging setup shared by the ingest, producer and consumer entry points."""

import logging
import os


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def component_prefix(component: str) -> str:
    """Log prefix identifying the component and its process, e.g. ``[producer][4242] ``."""
    return f"[{component}][{os.getpid()}] "
