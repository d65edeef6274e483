"""
Email Deliverability — Ifrit Content Factory

Generates the DNS records (SPF, DKIM, DMARC, MX) a content site needs before
it can send newsletters or transactional mail, and scores how complete the
setup is. Configurations are saved per domain in a JSON file.

The score is a heuristic over which record *purposes* are present:

    SPF   30    DKIM  30    DMARC 25    MX  15

    >= 85  configured       >= 50  partial       else  not-configured

Usage:
    from ifrit.email_deliverability import generate_email_config, generate_dns_instructions

    config = generate_email_config("example.com", "resend", include_receiving=True)
    print(generate_dns_instructions(config))

CLI:
    python -m ifrit.email_deliverability providers
    python -m ifrit.email_deliverability config --domain example.com --provider resend --receiving
    python -m ifrit.email_deliverability spf --include sendgrid.net --include mailgun.org
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("email_deliverability")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DATA_DIR = Path(os.getenv("IFRIT_DATA_DIR", "data"))
CONFIG_FILE = DATA_DIR / "email_configs.json"

DEFAULT_TTL = "3600"
DMARC_POLICIES = ("none", "quarantine", "reject")

PURPOSE_WEIGHTS = {"spf": 30, "dkim": 30, "dmarc": 25, "mx": 15}
PURPOSE_RECOMMENDATIONS = {
    "spf": "Add SPF record to prevent spoofing",
    "dkim": "Add DKIM for email authentication",
    "dmarc": "Add DMARC policy for protection",
    "mx": "Add MX records to receive email",
}
CONFIGURED_THRESHOLD = 85
PARTIAL_THRESHOLD = 50


class EmailStatus(str, Enum):
    NOT_CONFIGURED = "not-configured"
    PARTIAL = "partial"
    CONFIGURED = "configured"
    VERIFIED = "verified"


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------

@dataclass
class DNSRecord:
    type: str                      # TXT | CNAME | MX | A
    name: str                      # "@" for the root or a sub-name
    value: str
    purpose: str                   # spf | dkim | dmarc | mx | verification
    required: bool = True
    priority: Optional[int] = None  # MX only

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> DNSRecord:
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class EmailProvider:
    id: str
    name: str
    description: str
    tier: str                      # free | paid
    features: tuple[str, ...]
    record_templates: tuple[DNSRecord, ...]
    monthly_limit: Optional[int] = None

    def records(self, domain: str) -> list[DNSRecord]:
        """Fresh copies of the records this provider needs for *domain*."""
        return [DNSRecord(**asdict(r)) for r in self.record_templates]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tier": self.tier,
            "monthly_limit": self.monthly_limit,
            "features": list(self.features),
        }


@dataclass
class EmailDNSConfig:
    domain: str
    records: list[DNSRecord] = field(default_factory=list)
    score: int = 0
    status: EmailStatus = EmailStatus.NOT_CONFIGURED
    recommendations: list[str] = field(default_factory=list)
    provider_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "records": [r.to_dict() for r in self.records],
            "score": self.score,
            "status": self.status.value,
            "recommendations": list(self.recommendations),
            "provider_id": self.provider_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> EmailDNSConfig:
        return cls(
            domain=data["domain"],
            records=[DNSRecord.from_dict(r) for r in data.get("records", [])],
            score=int(data.get("score", 0)),
            status=EmailStatus(data.get("status", EmailStatus.NOT_CONFIGURED.value)),
            recommendations=list(data.get("recommendations", [])),
            provider_id=data.get("provider_id"),
        )


# ---------------------------------------------------------------------------
# Provider table
# ---------------------------------------------------------------------------

_IMPROVMX_MX = (
    DNSRecord("MX", "@", "mx1.improvmx.com", "mx", priority=10),
    DNSRecord("MX", "@", "mx2.improvmx.com", "mx", priority=20),
)

EMAIL_PROVIDERS: list[EmailProvider] = [
    EmailProvider(
        id="improvmx",
        name="ImprovMX",
        description="Free email forwarding - receive emails at your domain",
        tier="free",
        features=("Email forwarding", "Multiple aliases", "Catch-all", "No inbox"),
        record_templates=_IMPROVMX_MX + (
            DNSRecord("TXT", "@", "v=spf1 include:spf.improvmx.com ~all", "spf"),
        ),
    ),
    EmailProvider(
        id="sendgrid",
        name="SendGrid",
        description="Transactional email with 100 emails/day free",
        tier="free",
        monthly_limit=3000,
        features=("Transactional email", "Templates", "Analytics", "API"),
        # Host names are account specific; SendGrid shows the real ones
        record_templates=(
            DNSRecord("CNAME", "em1234", "u1234567.wl.sendgrid.net", "verification"),
            DNSRecord("CNAME", "s1._domainkey", "s1.domainkey.u1234567.wl.sendgrid.net", "dkim"),
            DNSRecord("CNAME", "s2._domainkey", "s2.domainkey.u1234567.wl.sendgrid.net", "dkim"),
            DNSRecord("TXT", "@", "v=spf1 include:sendgrid.net ~all", "spf"),
        ),
    ),
    EmailProvider(
        id="resend",
        name="Resend",
        description="Modern email API - 100 emails/day free",
        tier="free",
        monthly_limit=3000,
        features=("Modern API", "React templates", "Analytics", "Webhooks"),
        record_templates=(
            DNSRecord("TXT", "@", "v=spf1 include:amazonses.com ~all", "spf"),
            DNSRecord("CNAME", "resend._domainkey", "resend._domainkey.resend.dev", "dkim"),
        ),
    ),
    EmailProvider(
        id="mailgun",
        name="Mailgun",
        description="Powerful email API - 100 emails/day free",
        tier="free",
        monthly_limit=3000,
        features=("Email API", "Validation", "Logs", "Webhooks"),
        record_templates=(
            DNSRecord("TXT", "@", "v=spf1 include:mailgun.org ~all", "spf"),
            # Placeholder key; Mailgun issues the real one per domain
            DNSRecord("TXT", "smtp._domainkey", "k=rsa; p=MIGfMA0GCSqGSIb3DQEBAQUAA4...", "dkim"),
            DNSRecord("MX", "@", "mxa.mailgun.org", "mx", required=False, priority=10),
        ),
    ),
    EmailProvider(
        id="buttondown",
        name="Buttondown",
        description="Simple newsletter platform - 100 subscribers free",
        tier="free",
        features=("Newsletter", "Markdown", "Archives", "Analytics"),
        record_templates=(
            DNSRecord("TXT", "@", "v=spf1 include:buttondown.email ~all", "spf"),
        ),
    ),
]


def get_provider(provider_id: str) -> Optional[EmailProvider]:
    for provider in EMAIL_PROVIDERS:
        if provider.id == provider_id:
            return provider
    return None


def get_free_providers() -> list[EmailProvider]:
    return [p for p in EMAIL_PROVIDERS if p.tier == "free"]


# ---------------------------------------------------------------------------
# Record generation
# ---------------------------------------------------------------------------

def generate_dmarc(domain: str, policy: str = "quarantine") -> DNSRecord:
    """DMARC TXT record at ``_dmarc`` with aggregate and forensic reports to dmarc@domain."""
    if policy not in DMARC_POLICIES:
        raise ValueError(f"Unknown DMARC policy: {policy!r}. Valid: {', '.join(DMARC_POLICIES)}")
    return DNSRecord(
        type="TXT",
        name="_dmarc",
        value=(f"v=DMARC1; p={policy}; rua=mailto:dmarc@{domain}; "
               f"ruf=mailto:dmarc@{domain}; fo=1"),
        purpose="dmarc",
    )


def _score_records(records: list[DNSRecord]) -> tuple[int, list[str]]:
    purposes = {r.purpose for r in records}
    score = 0
    recommendations: list[str] = []
    for purpose, weight in PURPOSE_WEIGHTS.items():
        if purpose in purposes:
            score += weight
        else:
            recommendations.append(PURPOSE_RECOMMENDATIONS[purpose])
    return score, recommendations


def _status_for(score: int) -> EmailStatus:
    if score >= CONFIGURED_THRESHOLD:
        return EmailStatus.CONFIGURED
    if score >= PARTIAL_THRESHOLD:
        return EmailStatus.PARTIAL
    return EmailStatus.NOT_CONFIGURED


def generate_email_config(
    domain: str,
    provider_id: str,
    dmarc_policy: str = "quarantine",
    include_receiving: bool = False,
) -> EmailDNSConfig:
    """
    Build the full record set for *domain* using *provider_id*.

    Every config gets a DMARC record. With *include_receiving*, ImprovMX MX
    records are added when the provider brings no MX of its own. An unknown
    provider yields an empty, zero-score config.
    """
    provider = get_provider(provider_id)
    if provider is None:
        logger.warning("Unknown email provider %r for %s", provider_id, domain)
        return EmailDNSConfig(
            domain=domain,
            recommendations=["Select a valid email provider"],
        )

    records = provider.records(domain)
    records.append(generate_dmarc(domain, dmarc_policy))

    if include_receiving and not any(r.purpose == "mx" for r in records):
        records.extend(DNSRecord(**asdict(r)) for r in _IMPROVMX_MX)

    score, recommendations = _score_records(records)
    config = EmailDNSConfig(
        domain=domain,
        records=records,
        score=score,
        status=_status_for(score),
        recommendations=recommendations,
        provider_id=provider.id,
    )
    logger.info("Email config for %s via %s: score %d (%s)",
                domain, provider.name, score, config.status.value)
    return config


def combine_spf_records(includes: list[str]) -> str:
    """Single SPF record covering several senders; duplicates kept once, in order."""
    unique = list(dict.fromkeys(includes))
    return "v=spf1 " + " ".join(f"include:{i}" for i in unique) + " ~all"


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------

def format_record_for_display(record: DNSRecord) -> dict:
    value = record.value
    if record.type == "MX" and record.priority:
        value = f"{record.priority} {record.value}"
    return {"type": record.type, "name": record.name, "value": value, "ttl": DEFAULT_TTL}


_SECTIONS = (
    ("spf", "SPF (Sender Policy Framework)"),
    ("dkim", "DKIM (DomainKeys Identified Mail)"),
    ("dmarc", "DMARC (Domain-based Message Authentication)"),
    ("mx", "MX (Mail Exchange)"),
)


def generate_dns_instructions(config: EmailDNSConfig) -> str:
    """Copy-paste instructions grouped by purpose, followed by the score."""
    lines = [
        f"DNS Configuration for {config.domain}",
        "=" * 50,
        "",
        "Add the following DNS records to your domain:",
        "",
    ]

    for purpose, heading in _SECTIONS:
        group = [r for r in config.records if r.purpose == purpose]
        if not group:
            continue
        lines.append(heading)
        for r in group:
            lines.append(f"   Type: {r.type}")
            lines.append(f"   Name: {r.name}")
            if purpose == "mx":
                lines.append(f"   Priority: {r.priority}")
            lines.append(f"   Value: {r.value}")
            lines.append("")

    lines.append("")
    lines.append(f"Deliverability Score: {config.score}/100")

    if config.recommendations:
        lines.append("")
        lines.append("Recommendations:")
        for rec in config.recommendations:
            lines.append(f"  - {rec}")

    return "\n".join(lines)


def estimate_deliverability(config: EmailDNSConfig) -> dict:
    """Letter grade, one-line prediction and warm-up tips for a config."""
    score = config.score
    tips: list[str] = []

    if score >= 90:
        grade, prediction = "A", "Excellent deliverability - emails should reach inbox"
    elif score >= 75:
        grade, prediction = "B", "Good deliverability - most emails will reach inbox"
        tips.append("Consider adding BIMI for visual branding")
    elif score >= 50:
        grade, prediction = "C", "Fair deliverability - some emails may go to spam"
        tips.append("Complete missing authentication records")
        tips.append("Warm up domain before bulk sending")
    elif score >= 25:
        grade, prediction = "D", "Poor deliverability - many emails will be rejected"
        tips.append("Essential: Add SPF and DKIM records")
        tips.append("Set up proper MX records for replies")
    else:
        grade, prediction = "F", "Very poor - emails will likely be rejected"
        tips.append("Configure basic email authentication first")

    tips.append("New domains should send low volume initially")
    tips.append("Build reputation with engaged recipients first")

    return {"score": score, "grade": grade, "prediction": prediction, "tips": tips}


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def _load_json(path: Path, default: Any = None) -> Any:
    """Load JSON from *path*, returning *default* when the file is missing or corrupt."""
    if default is None:
        default = {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def _save_json(path: Path, data: Any) -> None:
    """Atomically write *data* as pretty-printed JSON to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, default=str)
    tmp.replace(path)


class EmailConfigStore:
    """Per-domain email configs in one JSON object keyed by domain."""

    def __init__(self, path: str | Path = CONFIG_FILE) -> None:
        self.path = Path(path)

    def _raw(self) -> dict:
        data = _load_json(self.path, default={})
        return data if isinstance(data, dict) else {}

    def save(self, config: EmailDNSConfig) -> None:
        data = self._raw()
        data[config.domain] = config.to_dict()
        _save_json(self.path, data)
        logger.info("Saved email config for %s", config.domain)

    def get(self, domain: str) -> Optional[EmailDNSConfig]:
        raw = self._raw().get(domain)
        return EmailDNSConfig.from_dict(raw) if raw else None

    def all(self) -> dict[str, EmailDNSConfig]:
        return {d: EmailDNSConfig.from_dict(c) for d, c in self._raw().items()}


# ===================================================================
# CLI Entry Point
# ===================================================================


def main() -> None:
    """CLI entry point: python -m ifrit.email_deliverability <command> [options]."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="email_deliverability",
        description="Ifrit Email Deliverability — DNS records for site email",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("providers", help="List supported email providers")

    p_config = subparsers.add_parser("config", help="Generate DNS records for a domain")
    p_config.add_argument("--domain", required=True, help="Domain name")
    p_config.add_argument("--provider", required=True, help="Provider ID")
    p_config.add_argument("--dmarc", choices=DMARC_POLICIES, default="quarantine",
                          help="DMARC policy (default: quarantine)")
    p_config.add_argument("--receiving", action="store_true",
                          help="Add forwarding MX records when the provider has none")
    p_config.add_argument("--save", action="store_true", help="Save to the config store")
    p_config.add_argument("--json", action="store_true", help="Output as JSON")

    p_spf = subparsers.add_parser("spf", help="Combine SPF includes into one record")
    p_spf.add_argument("--include", action="append", required=True,
                       help="SPF include domain (repeatable)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.command == "providers":
        for p in EMAIL_PROVIDERS:
            limit = f"{p.monthly_limit:,}/mo" if p.monthly_limit else "unlimited"
            print(f"  {p.id:<12} {p.name:<12} [{p.tier}] {limit:<12} {p.description}")

    elif args.command == "config":
        if get_provider(args.provider) is None:
            print(f"Unknown provider: {args.provider}. "
                  f"Valid: {', '.join(p.id for p in EMAIL_PROVIDERS)}")
            sys.exit(1)
        config = generate_email_config(args.domain, args.provider, args.dmarc, args.receiving)
        if args.save:
            EmailConfigStore().save(config)
        if args.json:
            print(json.dumps(config.to_dict(), indent=2))
            return
        print(generate_dns_instructions(config))
        estimate = estimate_deliverability(config)
        print(f"\nGrade: {estimate['grade']} — {estimate['prediction']}")

    elif args.command == "spf":
        print(combine_spf_records(args.include))


if __name__ == "__main__":
    main()
