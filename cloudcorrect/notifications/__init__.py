"""Alert dispatcher — SES email and Slack webhook on failing evaluations.

Fires when a group evaluates to FAIL and the group lists notification
emails. A configured Slack webhook adds a second channel for those alerts.
Delivery runs on a background worker; every failure is logged and never
reaches the evaluation caller.
"""

from __future__ import annotations

import html
import json
import logging
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor

import httpx

from cloudcorrect.config import settings
from cloudcorrect.invariants.models import CheckResult, CloudAccount, InvariantGroup, Status, utcnow
from cloudcorrect.providers.aws import Credentials, make_client, resolve_credentials

logger = logging.getLogger(__name__)

AccountLoader = Callable[[str], CloudAccount | None]


class AlertDispatcher:
    """Best-effort delivery of failing-group alerts."""

    def __init__(
        self,
        account_loader: AccountLoader | None = None,
        credentials_resolver: Callable[[CloudAccount], Credentials] = resolve_credentials,
        slack_webhook: str = "",
        sender: str = "",
    ) -> None:
        self._load_account = account_loader
        self._resolve_credentials = credentials_resolver
        self.slack_webhook = slack_webhook or settings.slack_webhook_url
        self.sender = sender or settings.ses_sender_email
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="alerts")

    def has_targets(self, group: InvariantGroup) -> bool:
        return bool(group.notification_emails)

    # -- Fire-and-forget entry point ----------------------------------------

    def notify(self, group: InvariantGroup, results: Sequence[CheckResult]) -> Future[None]:
        """Queue an alert for ``group`` and return without waiting for delivery."""
        future = self._executor.submit(self.dispatch_alert, group, list(results))
        future.add_done_callback(_log_failure)
        return future

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # -- Delivery -----------------------------------------------------------

    def dispatch_alert(self, group: InvariantGroup, results: Sequence[CheckResult]) -> None:
        """Deliver an alert for the FAIL subset of ``results`` on every configured channel."""
        failed = [r for r in results if r.status == Status.FAIL]
        payload = {
            "group": group.name,
            "groupId": group.id,
            "status": group.last_status.value,
            "failedChecks": [
                {
                    "checkId": r.check_id,
                    "alias": r.alias,
                    "reason": r.reason,
                    "expected": r.expected,
                    "observed": r.observed,
                }
                for r in failed
            ],
            "timestamp": utcnow(),
        }
        logger.info("Alert for group %s: %s", group.id, json.dumps(payload))

        if group.notification_emails:
            self._send_email(group, failed)
        if self.slack_webhook:
            self._send_slack(group, failed)

    def _send_email(self, group: InvariantGroup, failed: Sequence[CheckResult]) -> None:
        try:
            account = self._load_account(group.account_id) if self._load_account else None
            if account is None:
                raise LookupError(f"Cloud account {group.account_id} not found for notification")

            ses = make_client("ses", self._resolve_credentials(account), settings.ses_region)
            ses.send_email(
                Source=self.sender,
                Destination={"ToAddresses": group.notification_emails},
                Message={
                    "Subject": {"Data": f"{group.name} Evaluation Failed"},
                    "Body": {
                        "Html": {"Data": render_html(group, failed)},
                        "Text": {
                            "Data": (
                                f"The evaluation for group {group.name} failed. "
                                f"Check details in the dashboard: {_group_url(group)}"
                            ),
                        },
                    },
                },
            )
            logger.info("Notification email sent to: %s", ", ".join(group.notification_emails))
        except Exception as exc:
            logger.warning("SES notification for group %s failed: %s", group.id, exc)

    def _send_slack(self, group: InvariantGroup, failed: Sequence[CheckResult]) -> None:
        lines = [f"🔴 *Invariant group failed*: `{group.name}`"]
        for r in failed:
            lines.append(f"• `{r.alias or r.check_id}` {r.service}/{r.check_type}: {r.reason}")
        lines.append(_group_url(group))
        try:
            with httpx.Client(timeout=10) as client:
                resp = client.post(self.slack_webhook, json={"text": "\n".join(lines), "mrkdwn": True})
            if resp.status_code != 200:
                logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Slack notification failed: %s", exc)


def render_html(group: InvariantGroup, failed: Sequence[CheckResult]) -> str:
    rows = "".join(
        "<tr>"
        f"<td>{html.escape(r.alias or 'N/A')}</td>"
        f"<td>{html.escape(f'{r.service}/{r.check_type}')}</td>"
        f"<td>{html.escape(r.observed)}</td>"
        f"<td>{html.escape(r.expected)}</td>"
        f'<td style="color: #dc3545;">{html.escape(r.reason)}</td>'
        "</tr>"
        for r in failed
    )
    return (
        "<h2>Architectural Invariant Group Failure</h2>"
        f"<p>The following checks failed for group: <strong>{html.escape(group.name)}</strong></p>"
        '<table border="1" cellpadding="10" cellspacing="0" style="border-collapse: collapse; width: 100%;">'
        "<thead><tr><th>Alias</th><th>Type</th><th>Observed</th><th>Expected</th><th>Reason</th></tr></thead>"
        f"<tbody>{rows}</tbody></table>"
        f'<p>View full details in the <a href="{_group_url(group)}">Dashboard</a>.</p>'
    )


def _group_url(group: InvariantGroup) -> str:
    return f"{settings.app_url.rstrip('/')}/groups/{group.id}"


def _log_failure(future: Future[None]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Alert dispatch failed: %s", exc, exc_info=exc)
