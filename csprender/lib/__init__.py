from csprender.lib.csp import content_security_policy, generate_nonce, parse_csp
from csprender.lib.hooks import hooks, render_hook

__all__ = [
    "content_security_policy",
    "generate_nonce",
    "parse_csp",
    "hooks",
    "render_hook",
]
