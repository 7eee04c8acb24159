"""Dispatch engine - fans one notice out to many encrypted device pushes.

Flow per broadcast:
1. Reject an empty body before any side effect.
2. Resolve targets: every ACTIVE device, or each requested delivery key
   independently (a failed lookup becomes a FAILED result, not an abort).
3. One asyncio task per device: encrypt under the device's own secret/IV,
   push to the upstream service, append a notice log entry.
4. Merge per-device outcomes into a summary.

Per-device failures never affect sibling devices. Once started, the fan-out
is shielded from caller cancellation, so in-flight pushes still finish and
log even if the HTTP caller has stopped waiting.
"""
import asyncio
import json
import logging
from typing import Dict, List, Optional, Set, Tuple

from ..exceptions import NoTargetsResolved, RelayError, UpstreamUnavailable, ValidationError
from ..schemas.device import Device
from ..schemas.notice import NoticeRequest, NoticeResult, NoticeStatus, NoticeSummary
from ..schemas.notice_log import NoticeLog
from ..storage.base import CredentialStore
from ..utils.masking import short
from .crypto import CryptoEngine
from .upstream_client import UpstreamPushClient

logger = logging.getLogger(__name__)


def build_payload(request: NoticeRequest) -> Dict[str, str]:
    """Plaintext fields delivered to the device; icon/image only when set."""
    payload = {
        "title": request.title,
        "subtitle": request.subtitle,
        "body": request.body,
        "group": request.group,
        "url": request.url,
    }
    if request.icon.strip():
        payload["icon"] = request.icon
    if request.image.strip():
        payload["image"] = request.image
    return payload


def encode_payload(payload: Dict[str, str]) -> bytes:
    """Canonical encoding: compact JSON, sorted keys, UTF-8."""
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")


class DispatchEngine:
    """Encrypts and pushes notices to resolved devices concurrently."""

    def __init__(
        self,
        store: CredentialStore,
        upstream: Optional[UpstreamPushClient],
        crypto: Optional[CryptoEngine] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.store = store
        self.upstream = upstream
        self.crypto = crypto or CryptoEngine()
        # None or 0 means one task per device with no cap
        self.max_concurrency = max_concurrency or None
        # Fan-outs still running, including ones whose caller stopped waiting
        self._inflight: Set[asyncio.Future] = set()

    async def broadcast(self, request: NoticeRequest) -> Tuple[NoticeSummary, List[NoticeResult]]:
        """Send a notice to its targets.

        Returns:
            Tuple of (summary, results) with lookup failures first

        Raises:
            ValidationError: body is empty
            UpstreamUnavailable: no upstream client configured
            NoTargetsResolved: nothing to send to; ``.results`` holds lookup failures
            IOFailure: listing ACTIVE devices failed
        """
        if not request.body.strip():
            raise ValidationError("body is required")
        if self.upstream is None:
            raise UpstreamUnavailable("upstream client not configured")

        targets, lookup_failures = await self._resolve_targets(request.device_keys)
        if not targets:
            raise NoTargetsResolved(results=lookup_failures)

        plaintext = encode_payload(build_payload(request))
        results: List[NoticeResult] = list(lookup_failures)
        success_num = 0
        lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def run(device: Device) -> None:
            nonlocal success_num
            if semaphore is not None:
                async with semaphore:
                    result = await self._dispatch_one(device, request, plaintext)
            else:
                result = await self._dispatch_one(device, request, plaintext)
            async with lock:
                if result.status == NoticeStatus.SUCCESS:
                    success_num += 1
                results.append(result)

        fanout = asyncio.gather(*(run(device) for device in targets))
        self._inflight.add(fanout)
        fanout.add_done_callback(self._inflight.discard)
        await asyncio.shield(fanout)

        summary = NoticeSummary(send_num=len(targets), success_num=success_num)
        logger.info(
            f"Broadcast finished: {summary.success_num}/{summary.send_num} delivered, "
            f"{len(lookup_failures)} unresolved keys"
        )
        return summary, results

    async def _resolve_targets(self, device_keys: List[str]) -> Tuple[List[Device], List[NoticeResult]]:
        if not device_keys:
            return await self.store.list_active_devices(), []

        devices: List[Device] = []
        failures: List[NoticeResult] = []
        # Each key is looked up once even if repeated
        for key in dict.fromkeys(device_keys):
            try:
                devices.append(await self.store.get_device_by_key(key))
            except RelayError as e:
                logger.info(f"Target {short(key)} not resolved: {e}")
                failures.append(NoticeResult(device_key=key, status=NoticeStatus.FAILED, message=str(e)))
        return devices, failures

    async def _dispatch_one(self, device: Device, request: NoticeRequest, plaintext: bytes) -> NoticeResult:
        """Encrypt, push and log for one device. Never raises."""
        result = NoticeResult(device_key=device.key, status=NoticeStatus.FAILED)
        try:
            if not device.key:
                raise ValidationError("device has no delivery key")
            ciphertext = self.crypto.encrypt(plaintext, device.secret, device.iv)
            response = await self.upstream.push(device.key, ciphertext, device.iv)
            result.status = NoticeStatus.SUCCESS if response.ok else NoticeStatus.FAILED
            result.message = response.message
        except RelayError as e:
            result.message = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error pushing to {short(device.key)}")
            result.message = str(e)

        if result.status == NoticeStatus.FAILED:
            logger.warning(f"Push to {short(device.key)} failed: {result.message}")

        await self._append_log(device, request, result)
        return result

    async def _append_log(self, device: Device, request: NoticeRequest, result: NoticeResult) -> None:
        entry = NoticeLog(
            device_key=device.key,
            url=self.upstream.device_endpoint(device.key),
            title=request.title,
            body=request.body,
            group=request.group,
            result=result.message,
            status=result.status.value,
        )
        try:
            await self.store.append_log(entry)
        except Exception as e:
            # Delivery outcome stands; the audit entry is dropped
            logger.warning(f"Append notice log failed for {short(device.key)}: {e}")
