# server/security.py
# Security header policy: ordered header directives, helmet-style helpers, and
# the after_request hook that applies them (CSP, HSTS, X-Frame-Options, no-cache, ...)

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from flask import Response, request
from pydantic import BaseModel, ConfigDict, Field

NINETY_DAYS_IN_SECONDS = 90 * 24 * 60 * 60
HELMET_HSTS_MAX_AGE = 180 * 24 * 60 * 60  # helmet() default

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


class HeaderDirective(BaseModel):
    """One header assignment. ``value=None`` removes the header instead of setting it."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    value: Optional[str] = None
    applies_when: Optional[Callable[[Any], bool]] = None
    source: str = "custom"

    def applies(self, req) -> bool:
        if self.applies_when is None:
            return True
        return bool(self.applies_when(req))


class PolicySet:
    """
    Ordered, immutable sequence of HeaderDirective.
    Later directives win for the same header name (compared case-insensitively).
    """

    def __init__(self, directives: Iterable[HeaderDirective] = ()):
        self._directives: Tuple[HeaderDirective, ...] = tuple(directives)

    @property
    def directives(self) -> Tuple[HeaderDirective, ...]:
        return self._directives

    def __len__(self) -> int:
        return len(self._directives)

    def __iter__(self):
        return iter(self._directives)

    def then(self, *others: "PolicySet | HeaderDirective") -> "PolicySet":
        """Return a new PolicySet with ``others`` applied after this one."""
        directives: List[HeaderDirective] = list(self._directives)
        for other in others:
            if isinstance(other, HeaderDirective):
                directives.append(other)
            else:
                directives.extend(other.directives)
        return PolicySet(directives)

    def disable(self, name: str) -> "PolicySet":
        """Return a new PolicySet whose final word on ``name`` is: do not send it."""
        return self.then(disable(name))

    def resolve(self, req=None) -> Dict[str, Optional[str]]:
        """
        Final value per header for this request. ``None`` marks a header that
        must be absent from the response.
        """
        final: Dict[str, Tuple[str, Optional[str]]] = {}
        for directive in self._directives:
            if not directive.applies(req):
                continue
            final[directive.name.lower()] = (directive.name, directive.value)
        return {name: value for name, value in final.values()}

    def sources(self) -> List[str]:
        """Directive sources in application order, consecutive duplicates collapsed."""
        out: List[str] = []
        for directive in self._directives:
            if not out or out[-1] != directive.source:
                out.append(directive.source)
        return out

    def overridden(self) -> List[str]:
        """
        Header names that an explicit (non-umbrella) directive sets and a later
        directive removes.
        """
        explicit: Dict[str, str] = {}
        flagged: Dict[str, str] = {}
        for directive in self._directives:
            key = directive.name.lower()
            if directive.value is not None and directive.source != "helmet":
                explicit[key] = directive.name
                flagged.pop(key, None)
            elif directive.value is None and key in explicit:
                flagged[key] = explicit[key]
        return list(flagged.values())


# ---------------------- helmet-style directive helpers ----------------------

def _policy(source: str, headers: Sequence[Tuple[str, Optional[str]]], applies_when=None) -> PolicySet:
    return PolicySet(
        HeaderDirective(name=name, value=value, applies_when=applies_when, source=source)
        for name, value in headers
    )


def hide_powered_by() -> PolicySet:
    return _policy("hidePoweredBy", [("X-Powered-By", None)])


def frameguard(action: str = "sameorigin") -> PolicySet:
    normalized = (action or "").strip().upper()
    if normalized not in ("DENY", "SAMEORIGIN"):
        raise ValueError(f"frameguard action must be 'deny' or 'sameorigin', got {action!r}")
    return _policy("frameguard", [("X-Frame-Options", normalized)])


def xss_filter() -> PolicySet:
    return _policy("xssFilter", [("X-XSS-Protection", "1; mode=block")])


def no_sniff() -> PolicySet:
    return _policy("noSniff", [("X-Content-Type-Options", "nosniff")])


def ie_no_open() -> PolicySet:
    return _policy("ieNoOpen", [("X-Download-Options", "noopen")])


def _is_secure(req) -> bool:
    return bool(req is not None and getattr(req, "is_secure", False))


def hsts(
    max_age: int = HELMET_HSTS_MAX_AGE,
    include_subdomains: bool = True,
    preload: bool = False,
    force: bool = False,
) -> PolicySet:
    """
    Strict-Transport-Security. Browsers ignore it over plain HTTP, so unless
    ``force`` is set it is only emitted for secure requests.
    """
    if max_age < 0:
        raise ValueError("hsts max_age must be >= 0")
    value = f"max-age={int(max_age)}"
    if include_subdomains:
        value += "; includeSubDomains"
    if preload:
        value += "; preload"
    return _policy(
        "hsts",
        [("Strict-Transport-Security", value)],
        applies_when=None if force else _is_secure,
    )


def dns_prefetch_control(allow: bool = False) -> PolicySet:
    return _policy("dnsPrefetchControl", [("X-DNS-Prefetch-Control", "on" if allow else "off")])


def no_cache() -> PolicySet:
    return _policy(
        "noCache",
        [
            ("Surrogate-Control", "no-store"),
            ("Cache-Control", "no-store, no-cache, must-revalidate, proxy-revalidate"),
            ("Pragma", "no-cache"),
            ("Expires", "0"),
        ],
    )


def _directive_name(key: str) -> str:
    if "-" in key:
        return key.lower()
    return _CAMEL_RE.sub("-", key).lower()


def content_security_policy(directives: Mapping[str, Sequence[str]]) -> PolicySet:
    """Build a CSP header from ``{"defaultSrc": ["'self'"], ...}`` (camelCase or kebab-case keys)."""
    if not directives:
        raise ValueError("content_security_policy needs at least one directive")
    parts = []
    for key, sources in directives.items():
        if isinstance(sources, str):
            sources = [sources]
        parts.append(" ".join([_directive_name(key), *sources]).strip())
    return _policy("contentSecurityPolicy", [("Content-Security-Policy", "; ".join(parts))])


def disable(name: str) -> HeaderDirective:
    return HeaderDirective(name=name, value=None, source="disable")


def helmet() -> PolicySet:
    """Umbrella defaults: everything above except no_cache and content_security_policy."""
    bundle = PolicySet().then(
        dns_prefetch_control(),
        frameguard("sameorigin"),
        hide_powered_by(),
        hsts(),
        ie_no_open(),
        no_sniff(),
        xss_filter(),
    )
    return PolicySet(d.model_copy(update={"source": "helmet"}) for d in bundle)


def build_default_policy(hsts_enabled: bool = False) -> PolicySet:
    """
    The site's policy table. The umbrella bundle goes first so the specific
    helpers after it win; HSTS is switched off again at the end unless
    ``hsts_enabled`` is set.
    """
    policy = helmet().then(
        hide_powered_by(),
        frameguard("deny"),
        xss_filter(),
        no_sniff(),
        ie_no_open(),
        hsts(max_age=NINETY_DAYS_IN_SECONDS, force=True),
        dns_prefetch_control(),
        no_cache(),
        content_security_policy(
            {
                "defaultSrc": ["'self'"],
                "scriptSrc": ["'self'", "trusted-cdn.com"],
            }
        ),
    )
    if not hsts_enabled:
        policy = policy.disable("Strict-Transport-Security")
    return policy


# ---------------------- Flask wiring ----------------------

class HeaderPolicyApplier:
    """Writes the resolved PolicySet onto each response."""

    def __init__(self, policy: PolicySet):
        self.policy = policy

    def apply_policy(self, resp: Response, req=None) -> Response:
        for name, value in self.policy.resolve(req).items():
            if value is None:
                resp.headers.pop(name, None)
            else:
                resp.headers[name] = value
        return resp

    def security_headers(self, req=None) -> Dict[str, str]:
        """Headers this policy emits for ``req`` (removals left out)."""
        return {k: v for k, v in self.policy.resolve(req).items() if v is not None}


def register_security_headers(app, policy: Optional[PolicySet] = None) -> HeaderPolicyApplier:
    """Attach the security header policy to all responses."""
    if app.config.get("_SEC_HEADERS_INIT", False):
        return app.extensions["security_headers"]  # idempotent for reloader

    applier = HeaderPolicyApplier(policy if policy is not None else build_default_policy())

    for name in applier.policy.overridden():
        app.logger.warning(
            "security.headers.overridden",
            extra={"event": "security.headers.overridden", "header": name},
        )

    @app.after_request
    def _security_headers(resp):
        return applier.apply_policy(resp, request)

    app.extensions["security_headers"] = applier
    app.config["_SEC_HEADERS_INIT"] = True
    return applier
