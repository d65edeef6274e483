"""
Tests for the Email Deliverability module.

Tests provider record sets, DMARC generation, scoring and status, display
helpers, grading and the JSON config store.
"""

import json

import pytest

from ifrit.email_deliverability import (
    EMAIL_PROVIDERS,
    EmailConfigStore,
    EmailDNSConfig,
    EmailStatus,
    combine_spf_records,
    estimate_deliverability,
    format_record_for_display,
    generate_dmarc,
    generate_dns_instructions,
    generate_email_config,
    get_free_providers,
    get_provider,
)


def _purposes(config):
    return [r.purpose for r in config.records]


# ===================================================================
# Providers & DMARC
# ===================================================================

class TestProviders:

    @pytest.mark.unit
    def test_provider_ids(self):
        assert [p.id for p in EMAIL_PROVIDERS] == [
            "improvmx", "sendgrid", "resend", "mailgun", "buttondown",
        ]

    @pytest.mark.unit
    def test_get_provider(self):
        assert get_provider("resend").name == "Resend"
        assert get_provider("postmark") is None

    @pytest.mark.unit
    def test_free_providers(self):
        assert len(get_free_providers()) == 5

    @pytest.mark.unit
    def test_records_are_fresh_copies(self):
        provider = get_provider("resend")
        records = provider.records("example.com")
        records[0].value = "tampered"
        assert provider.records("example.com")[0].value == "v=spf1 include:amazonses.com ~all"

    @pytest.mark.unit
    def test_dmarc_record(self):
        record = generate_dmarc("example.com")
        assert record.type == "TXT"
        assert record.name == "_dmarc"
        assert record.purpose == "dmarc"
        assert record.value == (
            "v=DMARC1; p=quarantine; rua=mailto:dmarc@example.com; "
            "ruf=mailto:dmarc@example.com; fo=1"
        )

    @pytest.mark.unit
    def test_dmarc_policy(self):
        assert "p=reject;" in generate_dmarc("example.com", "reject").value

    @pytest.mark.unit
    def test_dmarc_bad_policy(self):
        with pytest.raises(ValueError):
            generate_dmarc("example.com", "maybe")


# ===================================================================
# generate_email_config
# ===================================================================

class TestGenerateEmailConfig:

    @pytest.mark.unit
    def test_resend_without_mx(self):
        config = generate_email_config("example.com", "resend")
        assert _purposes(config) == ["spf", "dkim", "dmarc"]
        assert config.score == 85
        assert config.status is EmailStatus.CONFIGURED
        assert config.recommendations == ["Add MX records to receive email"]
        assert config.provider_id == "resend"

    @pytest.mark.unit
    def test_receiving_adds_forwarding_mx(self):
        config = generate_email_config("example.com", "resend", include_receiving=True)
        mx = [r for r in config.records if r.purpose == "mx"]
        assert [(r.value, r.priority) for r in mx] == [
            ("mx1.improvmx.com", 10), ("mx2.improvmx.com", 20),
        ]
        assert config.score == 100
        assert config.recommendations == []

    @pytest.mark.unit
    def test_receiving_skipped_when_provider_has_mx(self):
        config = generate_email_config("example.com", "mailgun", include_receiving=True)
        assert _purposes(config).count("mx") == 1
        assert config.score == 100

    @pytest.mark.unit
    def test_improvmx_partial(self):
        config = generate_email_config("example.com", "improvmx")
        assert config.score == 70
        assert config.status is EmailStatus.PARTIAL
        assert config.recommendations == ["Add DKIM for email authentication"]

    @pytest.mark.unit
    def test_buttondown_partial(self):
        config = generate_email_config("example.com", "buttondown")
        assert config.score == 55
        assert config.status is EmailStatus.PARTIAL

    @pytest.mark.unit
    def test_sendgrid_verification_not_scored(self):
        config = generate_email_config("example.com", "sendgrid")
        assert "verification" in _purposes(config)
        assert config.score == 85

    @pytest.mark.unit
    def test_dmarc_policy_passed_through(self):
        config = generate_email_config("example.com", "resend", dmarc_policy="none")
        dmarc = [r for r in config.records if r.purpose == "dmarc"][0]
        assert "p=none;" in dmarc.value

    @pytest.mark.unit
    def test_unknown_provider(self):
        config = generate_email_config("example.com", "carrier-pigeon")
        assert config.records == []
        assert config.score == 0
        assert config.status is EmailStatus.NOT_CONFIGURED
        assert config.recommendations == ["Select a valid email provider"]


# ===================================================================
# Presentation & grading
# ===================================================================

class TestPresentation:

    @pytest.mark.unit
    def test_format_mx_with_priority(self):
        record = get_provider("improvmx").records("example.com")[0]
        assert format_record_for_display(record) == {
            "type": "MX", "name": "@", "value": "10 mx1.improvmx.com", "ttl": "3600",
        }

    @pytest.mark.unit
    def test_format_txt(self):
        shown = format_record_for_display(generate_dmarc("example.com"))
        assert shown["name"] == "_dmarc"
        assert shown["value"].startswith("v=DMARC1")

    @pytest.mark.unit
    def test_instructions(self):
        config = generate_email_config("example.com", "resend")
        text = generate_dns_instructions(config)
        assert text.startswith("DNS Configuration for example.com\n" + "=" * 50)
        assert text.index("SPF (Sender Policy Framework)") < text.index("DKIM (DomainKeys")
        assert "Name: resend._domainkey" in text
        assert "Deliverability Score: 85/100" in text
        assert "  - Add MX records to receive email" in text

    @pytest.mark.unit
    def test_instructions_include_mx_priority(self):
        text = generate_dns_instructions(generate_email_config("example.com", "improvmx"))
        assert "Priority: 20" in text

    @pytest.mark.unit
    @pytest.mark.parametrize("score,grade", [(100, "A"), (90, "A"), (85, "B"), (75, "B"),
                                             (55, "C"), (30, "D"), (24, "F"), (0, "F")])
    def test_grades(self, score, grade):
        result = estimate_deliverability(EmailDNSConfig(domain="example.com", score=score))
        assert result["grade"] == grade
        assert result["score"] == score
        assert result["tips"][-2:] == [
            "New domains should send low volume initially",
            "Build reputation with engaged recipients first",
        ]

    @pytest.mark.unit
    def test_grade_b_suggests_bimi(self):
        result = estimate_deliverability(generate_email_config("example.com", "resend"))
        assert result["grade"] == "B"
        assert result["tips"][0] == "Consider adding BIMI for visual branding"

    @pytest.mark.unit
    def test_combine_spf(self):
        assert combine_spf_records(["sendgrid.net", "mailgun.org", "sendgrid.net"]) == (
            "v=spf1 include:sendgrid.net include:mailgun.org ~all"
        )


# ===================================================================
# EmailConfigStore
# ===================================================================

class TestEmailConfigStore:

    @pytest.fixture
    def store(self, tmp_path):
        return EmailConfigStore(tmp_path / "email" / "configs.json")

    @pytest.mark.unit
    def test_missing(self, store):
        assert store.get("example.com") is None
        assert store.all() == {}

    @pytest.mark.unit
    def test_save_and_get(self, store):
        config = generate_email_config("example.com", "improvmx")
        store.save(config)
        loaded = store.get("example.com")
        assert loaded.score == 70
        assert loaded.status is EmailStatus.PARTIAL
        assert loaded.records[0].priority == 10
        assert loaded.provider_id == "improvmx"

    @pytest.mark.unit
    def test_multiple_domains(self, store):
        store.save(generate_email_config("a.com", "resend"))
        store.save(generate_email_config("b.com", "buttondown"))
        store.save(generate_email_config("a.com", "mailgun"))
        configs = store.all()
        assert set(configs) == {"a.com", "b.com"}
        assert configs["a.com"].provider_id == "mailgun"

    @pytest.mark.unit
    def test_atomic_write(self, store):
        store.save(generate_email_config("example.com", "resend"))
        assert not store.path.with_suffix(".tmp").exists()
        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data["example.com"]["status"] == "configured"

    @pytest.mark.unit
    def test_corrupt_file(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("[]", encoding="utf-8")
        assert store.all() == {}
