# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tick-based progress reporting for long operations.

Purely observational: one tick per completed step, nothing waits on it.
"""

import structlog

logger = structlog.get_logger()


class TickProgress:
    def __init__(self, label: str, total: int):
        self.label = label
        self.total = total
        self.current = 0

    def tick(self, step: str | None = None) -> None:
        self.current = min(self.current + 1, self.total)
        logger.info(
            "progress_tick",
            label=self.label,
            step=step,
            current=self.current,
            total=self.total,
        )

    def finish(self) -> None:
        self.current = self.total
        logger.info("progress_finished", label=self.label, total=self.total)
