"""Alerting for tenants and customers at high churn risk."""
import logging
from typing import List, Optional
import httpx
from config import config
from schemas import RiskAssessment

logger = logging.getLogger(__name__)


class AlertService:
    """Posts churn risk alerts to a Slack-compatible incoming webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        alert_levels: Optional[List[str]] = None
    ):
        """Initialize alert service (defaults from config)."""
        self.webhook_url = config.ALERT_WEBHOOK_URL if webhook_url is None else webhook_url
        self.enabled = config.ALERT_ENABLED if enabled is None else enabled
        self.alert_levels = config.ALERT_RISK_LEVELS if alert_levels is None else alert_levels

    def should_alert(self, assessment: RiskAssessment) -> bool:
        return assessment.risk_level.value in self.alert_levels

    async def send_risk_alert(
        self,
        tenant_id: str,
        assessment: RiskAssessment,
        customer_email: Optional[str] = None
    ) -> bool:
        """Send alert for a high churn risk assessment.

        Args:
            tenant_id: Tenant the assessment belongs to
            assessment: Computed churn risk
            customer_email: Customer the assessment was narrowed to, if any

        Returns:
            True if an alert was sent (or logged while disabled), False otherwise
        """
        if not self.should_alert(assessment):
            return False

        subject = customer_email or f"tenant {tenant_id}"

        if not self.enabled:
            logger.info(
                f"Churn alert would be sent for {subject} "
                f"(alerting disabled in config)"
            )
            return True

        payload = self._build_alert_payload(tenant_id, assessment, customer_email)

        try:
            if self.webhook_url:
                await self._send_webhook(payload)
            else:
                logger.warning(
                    f"ALERT: {subject} is at {assessment.risk_level.value} churn risk - "
                    f"score {assessment.risk_score:.1f}, "
                    f"retention {assessment.retention_probability:.1f}%"
                )

            return True

        except httpx.HTTPError as e:
            logger.error(f"Failed to send churn alert for {subject}: {e}")
            return False

    def _build_alert_payload(
        self,
        tenant_id: str,
        assessment: RiskAssessment,
        customer_email: Optional[str] = None
    ) -> dict:
        """Build Slack block-kit payload for a churn risk alert."""
        factors = "\n".join(
            f"• {factor.description} ({factor.severity.value})"
            for factor in assessment.churn_factors
        ) or "No discrete churn factors detected"

        return {
            "text": f"Churn risk alert: {assessment.risk_level.value}",
            "blocks": [
                {
                    "type": "header",
                    "text": {
                        "type": "plain_text",
                        "text": f"🚨 {assessment.risk_level.value.title()} Churn Risk"
                    }
                },
                {
                    "type": "section",
                    "fields": [
                        {
                            "type": "mrkdwn",
                            "text": f"*Tenant:*\n{tenant_id}"
                        },
                        {
                            "type": "mrkdwn",
                            "text": f"*Customer:*\n{customer_email or 'all customers'}"
                        },
                        {
                            "type": "mrkdwn",
                            "text": f"*Risk Score:*\n{assessment.risk_score:.1f}"
                        },
                        {
                            "type": "mrkdwn",
                            "text": f"*Retention Probability:*\n{assessment.retention_probability:.1f}%"
                        }
                    ]
                },
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": f"*Churn Factors:*\n{factors}"
                    }
                }
            ]
        }

    async def _send_webhook(self, payload: dict) -> None:
        """Send webhook notification.

        Raises:
            httpx.HTTPError: If webhook delivery fails
        """
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.post(
                self.webhook_url,
                json=payload
            )
            response.raise_for_status()
            logger.info("Churn alert delivered to webhook")
