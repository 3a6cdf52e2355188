# Overview: The single drain loop between the Local Ledger and the server.

"""
Sync worker.

One worker per device drains the outbox. Push results are settled per entry:
- id listed in `synced`     -> SYNCED
- failure with permanent    -> REJECTED at once (operator must look at it)
- other failures            -> stays PENDING until max_attempts, then REJECTED
- transport / 4xx / 5xx     -> nothing settled, the whole batch is retried later

Server copies returned under `kept` (last-write-wins went the server's way)
replace the local versions right after settlement. A pull only follows a
push that reached the server.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

import httpx

from pharmasync.time_utils import to_utc_z

from .api import SyncApiClient
from .ledger import LocalLedger


logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    pushed: int = 0
    synced: int = 0
    retrying: int = 0
    rejected: int = 0
    pulled: int = 0
    # Push never got a usable response
    push_failed: bool = False
    errors: list[str] = field(default_factory=list)


class SyncWorker:
    def __init__(
        self,
        ledger: LocalLedger,
        api: SyncApiClient,
        *,
        max_attempts: int = 3,
        batch_size: int = 500,
    ):
        self.ledger = ledger
        self.api = api
        self.max_attempts = max_attempts
        self.batch_size = batch_size

    def push_once(self, report: SyncReport | None = None) -> SyncReport:
        report = report or SyncReport()
        entries = self.ledger.pending(self.batch_size)
        if not entries:
            return report

        body: dict[str, list[dict]] = defaultdict(list)
        by_entity: dict[tuple[str, str], list] = defaultdict(list)
        for entry in entries:
            body[entry.entity_type].append(entry.payload)
            by_entity[(entry.entity_type, entry.entity_id)].append(entry)
        report.pushed = len(entries)

        try:
            response = self.api.push(dict(body))
        except httpx.HTTPError as e:
            logger.warning("Push failed, %d entries stay queued: %s", len(entries), e)
            report.errors.append(str(e))
            report.push_failed = True
            return report

        if response.status_code != 200:
            logger.warning("Push rejected with HTTP %s, %d entries stay queued", response.status_code, len(entries))
            report.errors.append(f"HTTP {response.status_code}")
            report.push_failed = True
            return report

        result = response.json()

        synced_seqs = []
        for entity_type, ids in result.get("synced", {}).items():
            for entity_id in ids:
                synced_seqs.extend(entry.seq for entry in by_entity.pop((entity_type, entity_id), []))
        self.ledger.mark_synced(synced_seqs)
        report.synced = len(synced_seqs)
        if result.get("kept"):
            self.ledger.apply_server_copies(result["kept"])

        for failure in result.get("failures", []):
            key = (failure.get("entityType"), failure.get("id"))
            message = failure.get("message") or failure.get("code") or "Unknown error"
            for entry in by_entity.pop(key, []):
                permanent = bool(failure.get("permanent")) or entry.attempts + 1 >= self.max_attempts
                self.ledger.mark_failed(entry.seq, message, permanent=permanent)
                if permanent:
                    report.rejected += 1
                    logger.warning(
                        "Outbox entry %s (%s %s) rejected: %s",
                        entry.seq, entry.entity_type, entry.entity_id, message,
                    )
                else:
                    report.retrying += 1
            report.errors.append(message)

        self.ledger.advance_cursor()
        logger.info(
            "Push settled: %d synced, %d retrying, %d rejected",
            report.synced, report.retrying, report.rejected,
        )
        return report

    def pull_once(self, report: SyncReport | None = None) -> SyncReport:
        report = report or SyncReport()
        watermark = self.ledger.watermark
        try:
            response = self.api.pull(to_utc_z(watermark) if watermark else None)
        except httpx.HTTPError as e:
            logger.warning("Pull failed: %s", e)
            report.errors.append(str(e))
            return report

        if response.status_code != 200:
            logger.warning("Pull rejected with HTTP %s", response.status_code)
            report.errors.append(f"HTTP {response.status_code}")
            return report

        result = response.json()
        report.pulled = self.ledger.apply_pull(result.get("data", {}), result["serverTime"])
        logger.info("Pull applied %d rows, server time %s", report.pulled, result["serverTime"])
        return report

    def run_once(self) -> SyncReport:
        """Health check, push, then pull. An unreachable server is a no-op; a failed push skips the pull."""
        report = SyncReport()
        if not self.api.health():
            logger.info("Server unreachable, sync skipped")
            report.errors.append("Server unreachable")
            return report
        self.push_once(report)
        if report.push_failed:
            return report
        self.pull_once(report)
        return report
