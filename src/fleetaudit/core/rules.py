"""Rule catalog and evaluator.

Runs a fixed, ordered battery of analysis modules against an inventory
snapshot: every site module once per managed site in inventory order, then
the control-plane module last. Finding ids come from a single counter so
their order follows module order exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from pydantic import BaseModel
from rich.console import Console

from ..models.entity import Entity
from ..models.finding import Action, ActionType, Category, Finding, Severity
from ..models.inventory import Inventory, Site
from ..utils.sanitize import sanitize_error

console = Console()

# Integrations the control plane cannot run in production without.
REQUIRED_INTEGRATIONS: dict[str, str] = {
    "auth0": "Auth0",
    "supabase": "Supabase",
    "namecheap": "Namecheap",
    "letsencrypt": "Let's Encrypt",
}

# Counted towards production readiness, but not blocking on their own.
IMPORTANT_INTEGRATIONS: dict[str, str] = {
    "sendgrid": "SendGrid",
    "gmail-api": "Gmail API",
    "microsoft-graph": "Microsoft Graph",
    "google-analytics": "Google Analytics",
    "aws-s3": "AWS S3",
    "github": "GitHub",
    "lovable-cloud": "Lovable Cloud",
    "slack": "Slack",
}


class RuleThresholds(BaseModel):
    response_time_high_ms: int = 3000
    response_time_medium_ms: int = 1500
    uptime_sla_percent: float = 99.0
    max_privileged_sessions: int = 3
    error_log_window_hours: int = 24
    error_log_high: int = 25
    error_log_critical: int = 100
    readiness_high_below: int = 50
    readiness_medium_below: int = 80

    @classmethod
    def from_config(cls, config: dict) -> RuleThresholds:
        rules = config.get("rules") or {}
        return cls(**{k: v for k, v in rules.items() if k in cls.model_fields})


def _hit(
    category: Category,
    severity: Severity,
    title: str,
    description: str,
    action_type: ActionType,
    label: str,
    implementation: Optional[str] = None,
    target: Optional[str] = None,
) -> dict:
    """Build the payload of a finding; ids and ownership are added by the evaluator."""
    return {
        "category": category,
        "severity": severity,
        "title": title,
        "description": description,
        "action": Action(type=action_type, label=label, implementation=implementation, target=target),
    }


# ---------------------------------------------------------------------------
# Control plane
# ---------------------------------------------------------------------------


def check_control_plane(inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    state = inventory.control_plane
    hits: list[dict] = []
    connected = {i.integration_id for i in state.integrations if i.status == "connected"}

    for integration_id, name in REQUIRED_INTEGRATIONS.items():
        if integration_id not in connected:
            hits.append(_hit(
                Category.INTEGRATION, Severity.CRITICAL,
                f"Required integration not connected: {name}",
                f"{name} is required to run the control plane in production.",
                ActionType.MANUAL, f"Connect {name} in Integrations page",
            ))

    privileged = [s for s in state.sessions if s.active and s.privileged]
    if len(privileged) > rules.max_privileged_sessions:
        hits.append(_hit(
            Category.SECURITY, Severity.HIGH,
            f"{len(privileged)} active privileged sessions",
            f"More than {rules.max_privileged_sessions} privileged admin sessions are active. "
            "Review impersonation and elevated sessions.",
            ActionType.REVIEW, "Review active admin sessions",
        ))

    window_start = inventory.captured_at - timedelta(hours=rules.error_log_window_hours)
    recent_errors = [
        e for e in state.error_logs
        if e.level in ("error", "critical") and e.created_at >= window_start
    ]
    if len(recent_errors) >= rules.error_log_high:
        severity = Severity.CRITICAL if len(recent_errors) >= rules.error_log_critical else Severity.HIGH
        hits.append(_hit(
            Category.BUG, severity,
            f"{len(recent_errors)} errors logged in the last {rules.error_log_window_hours}h",
            "Error log volume is above the alerting threshold. Investigate recurring failures.",
            ActionType.REVIEW, "Open audit and error logs",
        ))

    tracked = {**REQUIRED_INTEGRATIONS, **IMPORTANT_INTEGRATIONS}
    ready = sum(1 for integration_id in tracked if integration_id in connected)
    readiness = round(ready / len(tracked) * 100)
    if readiness < 100:
        if readiness < rules.readiness_high_below:
            severity = Severity.HIGH
        elif readiness < rules.readiness_medium_below:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        hits.append(_hit(
            Category.COMPLIANCE, severity,
            f"Production readiness at {readiness}%",
            f"{ready} of {len(tracked)} production integrations are connected.",
            ActionType.REVIEW, "Review production readiness checklist",
        ))

    if state.imported_apps == 0:
        hits.append(_hit(
            Category.FEATURE, Severity.LOW,
            "No imported projects",
            "Import your projects to enable centralized management and monitoring.",
            ActionType.MANUAL, "Import projects in Sites page",
        ))

    return hits


# ---------------------------------------------------------------------------
# Managed sites
# ---------------------------------------------------------------------------


def check_integration_health(site: Site, inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    hits: list[dict] = []
    site_integrations = inventory.integrations_for(site.id)

    if not site_integrations:
        hits.append(_hit(
            Category.INTEGRATION, Severity.HIGH,
            "No integrations configured",
            "This site has no third-party integrations set up. "
            "Consider adding analytics, email, or payment integrations.",
            ActionType.MANUAL, "Add integrations in Integrations page",
        ))

    for integration in site_integrations:
        if integration.status in ("error", "disconnected"):
            hits.append(_hit(
                Category.INTEGRATION, Severity.CRITICAL,
                f"Integration disconnected: {integration.integration_id}",
                "This integration is not connected properly and may cause functionality issues.",
                ActionType.AUTO_FIX, "Reconnect integration",
                implementation="reconnect-integration", target=integration.integration_id,
            ))

    return hits


def check_credential_hygiene(site: Site, inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    hits: list[dict] = []
    credentials = inventory.credentials_for(site.id)

    demo = [c for c in credentials if c.status == "demo"]
    if demo and site.status == "live":
        hits.append(_hit(
            Category.SECURITY, Severity.CRITICAL,
            f"{len(demo)} demo credentials on live site",
            "Live site is using demo credentials which may cause security issues "
            "or service interruptions.",
            ActionType.MANUAL, "Update to production credentials",
        ))

    for cred in credentials:
        if cred.status == "revoked" or cred.expires_at is None:
            continue
        if cred.expires_at < inventory.captured_at:
            hits.append(_hit(
                Category.SECURITY, Severity.HIGH,
                f"Expired credential still active: {cred.service or cred.id}",
                f"Credential expired on {cred.expires_at.date().isoformat()} but is not revoked.",
                ActionType.AUTO_FIX, "Revoke expired credential",
                implementation="revoke-expired-credential", target=cred.id,
            ))

    return hits


def check_ssl_validity(site: Site, inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    if site.ssl_status == "valid":
        return []
    return [_hit(
        Category.SECURITY, Severity.CRITICAL,
        "SSL certificate issue",
        f'SSL certificate status is "{site.ssl_status}". This may cause browser security warnings.',
        ActionType.AUTO_FIX, "Renew SSL certificate",
        implementation="trigger-ssl-renewal",
    )]


def check_health_status(site: Site, inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    if site.health_status in ("error", "down"):
        return [_hit(
            Category.BUG, Severity.CRITICAL,
            "Site health check failing",
            f'Site is reporting "{site.health_status}" status. Immediate investigation required.',
            ActionType.AUTO_FIX, "Reset health status after recovery",
            implementation="fix-health-status",
        )]
    if site.health_status == "degraded":
        return [_hit(
            Category.BUG, Severity.MEDIUM,
            "Site health degraded",
            "Site is responding but health checks report degraded service.",
            ActionType.REVIEW, "Check health dashboard",
        )]
    return []


def check_response_time(site: Site, inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    ms = site.response_time_ms
    if ms is None:
        return []
    if ms > rules.response_time_high_ms:
        severity, limit = Severity.HIGH, rules.response_time_high_ms
    elif ms > rules.response_time_medium_ms:
        severity, limit = Severity.MEDIUM, rules.response_time_medium_ms
    else:
        return []
    return [_hit(
        Category.PERFORMANCE, severity,
        "Slow response time",
        f"Average response time is {ms}ms which exceeds the {limit}ms threshold.",
        ActionType.REVIEW, "Analyze performance metrics",
    )]


def check_domain_configuration(site: Site, inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    if site.domain:
        return []
    return [_hit(
        Category.FEATURE, Severity.MEDIUM,
        "No custom domain configured",
        "Site is using a temporary URL. Consider adding a custom domain for better branding.",
        ActionType.MANUAL, "Add domain in Site settings",
    )]


def check_uptime_sla(site: Site, inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    uptime = site.uptime_percentage
    if uptime is None or uptime >= rules.uptime_sla_percent:
        return []
    return [_hit(
        Category.COMPLIANCE, Severity.HIGH,
        "Uptime below SLA threshold",
        f"Uptime is {uptime}% which is below the {rules.uptime_sla_percent:g}% SLA target.",
        ActionType.REVIEW, "Review uptime reports",
    )]


def check_pending_verification(site: Site, inventory: Inventory, rules: RuleThresholds) -> list[dict]:
    hits: list[dict] = []
    if site.domain and site.domain_verification == "pending":
        hits.append(_hit(
            Category.COMPLIANCE, Severity.LOW,
            f"Domain verification pending: {site.domain}",
            "DNS ownership has not been verified yet. SSL provisioning waits on verification.",
            ActionType.MANUAL, "Add verification DNS record",
        ))
    if site.status == "pending":
        hits.append(_hit(
            Category.FEATURE, Severity.LOW,
            "Site awaiting go-live",
            "Site is still in pending state and is not serving production traffic.",
            ActionType.REVIEW, "Complete go-live checklist",
        ))
    return hits


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleModule:
    key: str
    name: str
    check: Callable[..., list[dict]]


CONTROL_PLANE_MODULE = RuleModule("control-plane-readiness", "Control Plane Readiness", check_control_plane)

SITE_MODULES: list[RuleModule] = [
    RuleModule("integration-health", "Integration Health", check_integration_health),
    RuleModule("credential-hygiene", "Credential Hygiene", check_credential_hygiene),
    RuleModule("ssl-validity", "SSL Validity", check_ssl_validity),
    RuleModule("health-check", "Health Check", check_health_status),
    RuleModule("response-time", "Response Time", check_response_time),
    RuleModule("domain-configuration", "Domain Configuration", check_domain_configuration),
    RuleModule("uptime-sla", "Uptime SLA", check_uptime_sla),
    RuleModule("pending-verification", "Pending Verification", check_pending_verification),
]

ALL_MODULE_KEYS = [m.key for m in SITE_MODULES] + [CONTROL_PLANE_MODULE.key]


def _failure_hit(module: RuleModule, error: Exception) -> dict:
    return _hit(
        Category.COMPLIANCE, Severity.MEDIUM,
        f"Evaluation failed: {module.name}",
        f"The {module.key} module raised {type(error).__name__}: {sanitize_error(str(error))}",
        ActionType.REVIEW, "Re-run analysis and inspect module output",
    )


def evaluate(
    inventory: Inventory,
    thresholds: Optional[RuleThresholds] = None,
    site_ids: Optional[list[str]] = None,
) -> list[Finding]:
    """Evaluate every rule module and return findings in module order.

    ``site_ids`` restricts the managed sites that are evaluated; the control
    plane is always evaluated.
    """
    rules = thresholds or RuleThresholds()
    findings: list[Finding] = []
    counter = 0

    def run_module(module: RuleModule, entity: Entity, args: tuple) -> None:
        nonlocal counter
        try:
            hits = list(module.check(*args, rules))
        except Exception as e:
            console.print(f"  [yellow]WARN[/yellow] {module.name} failed for {entity.name}: {sanitize_error(str(e))}")
            hits = [_failure_hit(module, e)]
        for hit in hits:
            counter += 1
            findings.append(Finding(id=f"finding-{counter}", entity=entity, module=module.key, **hit))

    for site in inventory.sites:
        if site_ids is not None and site.id not in site_ids:
            continue
        entity = site.as_entity()
        for module in SITE_MODULES:
            run_module(module, entity, (site, inventory))

    run_module(CONTROL_PLANE_MODULE, Entity.control_plane(), (inventory,))

    return findings
