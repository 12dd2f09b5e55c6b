"""Mock adapters for testing."""

from gatedag.stdlib.adapters.mock.mock_deployer import MockDeployer
from gatedag.stdlib.adapters.mock.mock_stage import MockStageAction
from gatedag.stdlib.adapters.mock.mock_tag_store import MockTagStore

__all__ = ["MockDeployer", "MockStageAction", "MockTagStore"]
