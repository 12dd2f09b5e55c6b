"""gatedag kernel: domain models, ports, orchestration and configuration.

Nothing in the kernel imports an adapter. Concrete tag stores, deployers
and stage actions live in ``gatedag.stdlib``.
"""
