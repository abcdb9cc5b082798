def pytest_addoption(parser):
    """Register the probe script's CLI flags so `pytest scripts/probe_fingerprint.py --url ...` won't fail.

    This makes pytest accept the script's command-line flags (best-effort). It does not execute the script's main
    automatically.
    """

    # Helper to safely add options without causing conflicts if already registered
    def safe_addoption(*args, **kwargs):
        try:
            parser.addoption(*args, **kwargs)
        except ValueError:
            pass

    safe_addoption("--url", action="store", help="Target url (script flag)")
    safe_addoption("--proxy", action="store", help="Proxy url (script flag)")
    safe_addoption("--seed", action="store", help="Fingerprint seed (script flag)")
    safe_addoption("--requests", action="store", help="Requests per connection (script flag)")
    safe_addoption("--chrome-order", action="store_true", help="Use Chrome header order (script flag)")
