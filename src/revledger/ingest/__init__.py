# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Ingest point and the partitioned log it writes."""

from .ingest_point import IngestPoint, IngestResult
from .partition_log import PartitionedLogStore

__all__ = ["IngestPoint", "IngestResult", "PartitionedLogStore"]
