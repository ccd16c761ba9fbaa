"""Email discovery for captured leads.

For each lead without a verified address the company domain is inferred from
``company_url``, a handful of common address patterns are generated from the
lead's name and each candidate is checked with an MX lookup followed by an
SMTP ``RCPT TO`` probe.  Many mail servers accept every recipient or refuse
probes outright, so ``unknown`` is a common and legitimate outcome.
"""
from __future__ import annotations

import logging
import re
import smtplib
import unicodedata
from dataclasses import replace
from functools import partial
from typing import Callable, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import dns.exception
import dns.resolver

from .errors import NotFoundError
from .models import LeadRecord
from .repository import StateRepository

LOGGER = logging.getLogger(__name__)

SMTP_PORT = 25
SMTP_TIMEOUT_SECONDS = 5.0
HELO_DOMAIN = "linkedin-scraper.local"
MAIL_FROM = "verify@linkedin-scraper.local"
ACCEPTED_RCPT_CODES = (250, 251, 252)

EmailVerifier = Callable[[str], str]

_NAME_NOISE = re.compile(r"[^a-zA-Z\s'-]")
_WHITESPACE = re.compile(r"\s+")
_NON_ALPHA = re.compile(r"[^a-z]")


def sanitize_name(value: Optional[str]) -> str:
    if not value:
        return ""
    decomposed = "".join(char for char in unicodedata.normalize("NFKD", value) if not unicodedata.combining(char))
    return _WHITESPACE.sub(" ", _NAME_NOISE.sub(" ", decomposed)).strip()


def split_name(full_name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    parts = sanitize_name(full_name).split()
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[-1]


def domain_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parsed = urlparse(url if url.startswith("http") else f"https://{url}")
    host = (parsed.hostname or "").lower()
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def build_email_candidates(first: Optional[str], last: Optional[str], domain: Optional[str]) -> List[str]:
    """Common corporate address patterns, most likely first."""

    if not domain:
        return []
    domain = domain.lower()
    first_safe = _NON_ALPHA.sub("", (first or "").lower())
    last_safe = _NON_ALPHA.sub("", (last or "").lower())

    locals_: List[str] = []
    if first_safe and last_safe:
        locals_ += [
            f"{first_safe}.{last_safe}",
            f"{first_safe}{last_safe}",
            f"{first_safe[0]}{last_safe}",
            f"{first_safe}.{last_safe[0]}",
        ]
    if first_safe:
        locals_.append(first_safe)
        if last_safe:
            locals_.append(f"{first_safe[0]}{last_safe[0]}")
    if last_safe:
        locals_.append(last_safe)

    candidates: List[str] = []
    for local in locals_:
        address = f"{local}@{domain}"
        if address not in candidates:
            candidates.append(address)
    return candidates


def lookup_mx_hosts(domain: str) -> List[str]:
    """MX hosts for ``domain`` ordered by preference; empty when resolution fails."""

    try:
        answers = dns.resolver.resolve(domain, "MX")
    except dns.exception.DNSException as exc:
        LOGGER.debug("MX lookup for %s failed: %s", domain, exc)
        return []
    records = sorted(answers, key=lambda record: record.preference)
    return [record.exchange.to_text(omit_final_dot=True) for record in records]


def probe_mx_host(host: str, email: str, *, timeout: float = SMTP_TIMEOUT_SECONDS) -> str:
    try:
        with smtplib.SMTP(host, SMTP_PORT, timeout=timeout) as client:
            code, _ = client.helo(HELO_DOMAIN)
            if code != 250:
                return "invalid" if 500 <= code < 600 else "unknown"
            code, _ = client.mail(MAIL_FROM)
            if code not in (250, 251):
                return "invalid" if 500 <= code < 600 else "unknown"
            code, _ = client.rcpt(email)
    except (smtplib.SMTPException, OSError) as exc:
        LOGGER.debug("SMTP probe of %s via %s failed: %s", email, host, exc)
        return "unknown"
    if code in ACCEPTED_RCPT_CODES:
        return "valid"
    if 500 <= code < 600:
        return "invalid"
    return "unknown"


def verify_email_address(email: str) -> str:
    """Return ``valid``, ``invalid`` or ``unknown`` for ``email``."""

    _, _, domain = email.partition("@")
    if not domain:
        return "unknown"
    for host in lookup_mx_hosts(domain):
        result = probe_mx_host(host, email)
        if result != "unknown":
            return result
    return "unknown"


def enrich_lead(lead: LeadRecord, verifier: EmailVerifier = verify_email_address) -> LeadRecord:
    """Return a copy of ``lead`` with inferred company details and the best email found."""

    company_name = lead.company_name or lead.inferred_company_name
    company_domain = lead.inferred_company_domain or domain_from_url(lead.company_url)
    first, last = split_name(lead.full_name)
    candidates = build_email_candidates(first, last, company_domain)
    # an address scraped from the contact panel is checked before any guess
    if lead.email and lead.email.lower() not in candidates:
        candidates.insert(0, lead.email.lower())

    email: Optional[str] = None
    status = "not_found"
    for candidate in candidates:
        try:
            result = verifier(candidate)
        except Exception:
            LOGGER.exception("Verifier raised for %s", candidate)
            result = "unknown"
        if result == "valid":
            email, status = candidate, "valid"
            break
        if result == "invalid":
            status = "invalid"
        elif status != "invalid":
            status = "unknown"

    return replace(
        lead,
        inferred_company_name=company_name,
        inferred_company_domain=company_domain,
        email=email or lead.email,
        email_verification_status=status,
    )


def _changed(before: LeadRecord, after: LeadRecord) -> bool:
    return (
        before.inferred_company_name != after.inferred_company_name
        or before.inferred_company_domain != after.inferred_company_domain
        or before.email != after.email
        or before.email_verification_status != after.email_verification_status
    )


def _apply_enrichment(enriched: LeadRecord, current: LeadRecord) -> LeadRecord:
    # only the enrichment fields; anything else may have been re-captured meanwhile
    return replace(
        current,
        inferred_company_name=enriched.inferred_company_name,
        inferred_company_domain=enriched.inferred_company_domain,
        email=enriched.email,
        email_verification_status=enriched.email_verification_status,
    )


class LeadEnricher:
    """Fill in emails for stored leads and persist the ones that changed."""

    def __init__(self, repository: StateRepository, verifier: Optional[EmailVerifier] = None) -> None:
        self._repository = repository
        self._verifier = verifier or verify_email_address

    def enrich_pending(self, ids: Optional[Iterable[str]] = None) -> List[LeadRecord]:
        wanted = set(ids or ())
        updated: List[LeadRecord] = []
        for lead in self._repository.list_leads():
            if wanted and lead.id not in wanted:
                continue
            if lead.email and lead.email_verification_status == "valid":
                continue
            enriched = enrich_lead(lead, self._verifier)
            if not _changed(lead, enriched):
                continue
            try:
                updated.append(self._repository.update_lead(lead.id, partial(_apply_enrichment, enriched)))
            except NotFoundError:
                LOGGER.warning("Lead %s was removed during enrichment; skipping", lead.id)
        LOGGER.info("Enriched %s lead(s)", len(updated))
        return updated


__all__ = [
    "LeadEnricher",
    "build_email_candidates",
    "domain_from_url",
    "enrich_lead",
    "lookup_mx_hosts",
    "sanitize_name",
    "split_name",
    "verify_email_address",
]
