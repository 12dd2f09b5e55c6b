"""Standard library of gatedag adapters."""
