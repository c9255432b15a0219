"""
StatEnv gateway package.

The gateway proxies ``/{app}/{api}`` calls from static sites to upstream
APIs, injecting secrets that never reach the browser.

Structure:
- app.main: FastAPI app and the catch-all proxy route.
- app.registry: App/API registry models, loading and validation.
- app.domain: Request pipeline, origin checks and response assembly.
- app.ratelimit: Fixed-window rate limiter.
- app.caching: Response cache and its backends.
- app.adapters: Upstream HTTP forwarder.
"""
