"""
Security response headers middleware.

Applied via @app.after_request to EVERY response, including socket
handshake responses. Each header is annotated with the threat it mitigates.
"""

from flask import Flask

# Stripe Checkout is the only third-party origin the frontend talks to.
STRIPE_SCRIPT_ORIGIN = 'https://js.stripe.com'
STRIPE_FRAME_ORIGINS = ('https://js.stripe.com', 'https://hooks.stripe.com')
STRIPE_API_ORIGIN = 'https://api.stripe.com'


def build_csp() -> str:
    """Assemble the Content-Security-Policy header value."""
    directives = [
        "default-src 'self'",
        f"script-src 'self' {STRIPE_SCRIPT_ORIGIN}",
        "style-src 'self'",
        # Photos may be redirected to presigned object-storage URLs.
        "img-src 'self' data: blob: https:",
        # Same-origin websockets for the realtime channel.
        f"connect-src 'self' ws: wss: {STRIPE_API_ORIGIN}",
        f"frame-src {' '.join(STRIPE_FRAME_ORIGINS)}",
        "frame-ancestors 'none'",
        "form-action 'self'",
        "base-uri 'self'",
        "object-src 'none'",
    ]
    return '; '.join(directives)


def init_security_headers(app: Flask) -> None:
    """Register security header hooks on the Flask app."""
    csp = build_csp()

    @app.after_request
    def set_security_headers(response):
        """Apply security headers to every response."""
        # --- XSS Protection ---
        response.headers['Content-Security-Policy'] = csp
        # Stops MIME sniffing of uploaded images into scripts.
        response.headers['X-Content-Type-Options'] = 'nosniff'

        # --- Clickjacking Protection ---
        # Legacy counterpart of CSP frame-ancestors for older browsers.
        response.headers['X-Frame-Options'] = 'DENY'

        # --- Transport Security ---
        # Skipped in debug so local HTTP development keeps working.
        if not app.debug:
            response.headers['Strict-Transport-Security'] = (
                'max-age=31536000; includeSubDomains'
            )

        # --- Privacy & Information Leakage ---
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        # Payment stays enabled for Stripe Checkout.
        response.headers['Permissions-Policy'] = (
            'camera=(), microphone=(), geolocation=(), payment=(self)'
        )
        response.headers['Cross-Origin-Opener-Policy'] = 'same-origin'
        response.headers['Cross-Origin-Resource-Policy'] = 'same-origin'
        response.headers['X-Permitted-Cross-Domain-Policies'] = 'none'
        response.headers['X-DNS-Prefetch-Control'] = 'off'
        response.headers['X-Download-Options'] = 'noopen'

        # --- Caching ---
        # API responses carry tenant data and must not be cached, unless
        # the view chose its own policy (served photos use private caching).
        if 'Cache-Control' not in response.headers:
            response.headers['Cache-Control'] = (
                'no-store, no-cache, must-revalidate, max-age=0'
            )
            response.headers['Pragma'] = 'no-cache'

        # --- Version Disclosure ---
        response.headers.pop('Server', None)
        response.headers.pop('X-Powered-By', None)

        return response
