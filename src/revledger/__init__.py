"""
Revledger

Revenue event pipeline: reliable producer, partitioned append-only log,
offset-tracked consumer and ledger.
"""

# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only

__version__ = "0.1.0"
