"""Mock Deployer implementation for testing purposes."""

from __future__ import annotations

import asyncio
from typing import Any

from gatedag.kernel.exceptions import DeploymentError
from gatedag.kernel.ports.deployer import Deployer, DeploymentHandle, DeploymentRequest


class MockDeployer(Deployer):
    """Records deployment requests instead of issuing them.

    Re-deploying the same tag to the same environment returns the handle
    issued the first time.
    """

    # Type annotations for attributes
    delay_seconds: float
    call_count: int
    requests: list[DeploymentRequest]
    should_raise: bool

    def __init__(self, delay_seconds: float = 0.0, **kwargs: Any) -> None:
        """Initialize with configuration.

        Args
        ----
            delay_seconds: Delay before returning the handle (default: 0.0)
            **kwargs: Additional configuration options
        """
        self.delay_seconds = delay_seconds

        # Non-config state
        self.call_count = 0
        self.requests = []
        self.should_raise = False
        self._handles: dict[str, DeploymentHandle] = {}

    async def adeploy(self, request: DeploymentRequest) -> DeploymentHandle:
        self.call_count += 1
        self.requests.append(request)

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if self.should_raise:
            raise DeploymentError(
                request.environment, request.tag, "Mock deployer error for testing"
            )

        handle = self._handles.get(request.deployment_id)
        if handle is None:
            handle = DeploymentHandle(
                deployment_id=request.deployment_id,
                environment=request.environment,
                tag=request.tag,
                run_id=request.run_id,
                detail="mock",
            )
            self._handles[request.deployment_id] = handle
        return handle

    @property
    def deployed_tags(self) -> list[tuple[str, str]]:
        """``(environment, tag)`` pairs in request order."""
        return [(r.environment, r.tag) for r in self.requests]

    def reset(self) -> None:
        """Reset the mock state."""
        self.call_count = 0
        self.requests = []
        self.should_raise = False
        self._handles.clear()
