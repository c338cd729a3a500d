"""Tests for builds/service.py module.

Tests reconciliation decisions and the build manager with fake build
processes that record every call.
"""

import threading
from unittest.mock import MagicMock

import pytest

from shared_builds.builds.cluster import ClusterBuildProcess
from shared_builds.builds.definition import BuildDefinition
from shared_builds.builds.registry import BuildRegistry
from shared_builds.builds.service import BuildManager, create_manager, decide_action
from shared_builds.config import Settings
from shared_builds.errors import (
    BuildFailedError,
    BuildTimeoutError,
    ClusterError,
    UnknownDefinitionError,
)
from shared_builds.types import (
    REBUILD_STATUSES,
    STEADY_STATUSES,
    BuildAction,
    BuildStatus,
)


class FakeProcess:
    """Build process recording the commands it receives."""

    def __init__(self, definition: BuildDefinition, status: BuildStatus) -> None:
        self.definition = definition
        self.current_status = status
        self.calls: list[str] = []
        self.wait_timeouts: list[float | None] = []
        self.wait_error: Exception | None = None
        self.create_error: Exception | None = None

    @property
    def name(self) -> str:
        return self.definition.name

    def status(self) -> BuildStatus:
        self.calls.append("status")
        return self.current_status

    def create(self) -> None:
        self.calls.append("create")
        if self.create_error is not None:
            raise self.create_error
        self.current_status = BuildStatus.RUNNING

    def delete(self) -> None:
        self.calls.append("delete")

    def update(self) -> None:
        self.calls.append("update")
        self.current_status = BuildStatus.RUNNING

    def await_completion(self, timeout: float | None = None) -> None:
        self.calls.append("wait")
        self.wait_timeouts.append(timeout)
        if self.wait_error is not None:
            raise self.wait_error
        self.current_status = BuildStatus.COMPLETE

    @property
    def mutations(self) -> list[str]:
        return [c for c in self.calls if c in {"create", "delete", "update"}]


class FakeFactory:
    """Factory handing out FakeProcess instances with preset statuses."""

    def __init__(self, statuses: dict[str, BuildStatus] | None = None) -> None:
        self.statuses = statuses or {}
        self.created: list[FakeProcess] = []

    def __call__(self, definition: BuildDefinition) -> FakeProcess:
        status = self.statuses.get(definition.name, BuildStatus.COMPLETE)
        process = FakeProcess(definition, status)
        self.created.append(process)
        return process


def make_definition(name: str = "app", git_ref: str = "main") -> BuildDefinition:
    return BuildDefinition(
        name=name,
        git_url="https://git.example.com/team/app.git",
        git_ref=git_ref,
        builder_image="registry.example.com/builder/python:3.12",
    )


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def manager(factory: FakeFactory) -> BuildManager:
    return BuildManager(BuildRegistry(factory))


class TestDecideAction:
    """Tests for the reconcile decision table."""

    @pytest.mark.parametrize("status", sorted(REBUILD_STATUSES))
    def test_rebuild_statuses_recreate(self, status: BuildStatus) -> None:
        """Missing, stale and broken builds should be recreated."""
        assert decide_action(status) == BuildAction.RECREATE

    def test_source_change_updates(self) -> None:
        """A source change should update in place."""
        assert decide_action(BuildStatus.SOURCE_CHANGE) == BuildAction.UPDATE

    @pytest.mark.parametrize("status", sorted(STEADY_STATUSES))
    def test_steady_statuses_do_nothing(self, status: BuildStatus) -> None:
        """Running and complete builds should be left alone."""
        assert decide_action(status) == BuildAction.NONE

    @pytest.mark.parametrize("status", list(BuildStatus))
    def test_force_rebuild_always_recreates(self, status: BuildStatus) -> None:
        """Force rebuild should override every status."""
        assert decide_action(status, force_rebuild=True) == BuildAction.RECREATE


class TestDeployBuild:
    """Tests for BuildManager.deploy_build."""

    @pytest.mark.parametrize("status", sorted(REBUILD_STATUSES))
    def test_rebuild_status_deletes_then_creates(
        self, factory: FakeFactory, manager: BuildManager, status: BuildStatus
    ) -> None:
        """Rebuild statuses should delete before create, once each."""
        definition = make_definition()
        factory.statuses[definition.name] = status

        action = manager.deploy_build(definition, wait=False)

        assert action == BuildAction.RECREATE
        assert factory.created[0].mutations == ["delete", "create"]

    def test_source_change_updates_once(
        self, factory: FakeFactory, manager: BuildManager
    ) -> None:
        """Source change should issue exactly one update."""
        definition = make_definition()
        factory.statuses[definition.name] = BuildStatus.SOURCE_CHANGE

        action = manager.deploy_build(definition, wait=False)

        assert action == BuildAction.UPDATE
        assert factory.created[0].mutations == ["update"]

    @pytest.mark.parametrize("status", sorted(STEADY_STATUSES))
    def test_steady_status_issues_nothing(
        self, factory: FakeFactory, manager: BuildManager, status: BuildStatus
    ) -> None:
        """Steady builds should see no mutating call."""
        definition = make_definition()
        factory.statuses[definition.name] = status

        action = manager.deploy_build(definition, wait=False)

        assert action == BuildAction.NONE
        assert factory.created[0].mutations == []

    @pytest.mark.parametrize("status", list(BuildStatus))
    def test_force_rebuild_recreates_any_status(
        self, factory: FakeFactory, status: BuildStatus
    ) -> None:
        """Force rebuild should delete then create regardless of status."""
        manager = BuildManager(BuildRegistry(factory), force_rebuild=True)
        definition = make_definition()
        factory.statuses[definition.name] = status

        action = manager.deploy_build(definition, wait=False)

        assert action == BuildAction.RECREATE
        assert factory.created[0].mutations == ["delete", "create"]

    def test_waits_by_default(self, manager: BuildManager, factory: FakeFactory) -> None:
        """deploy_build should wait for completion unless told otherwise."""
        manager.deploy_build(make_definition())

        process = factory.created[0]
        assert process.calls[-1] == "wait"
        assert process.wait_timeouts == [None]

    def test_wait_passes_timeout(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """The caller's timeout should reach the process unchanged."""
        manager.deploy_build(make_definition(), timeout=12.5)

        assert factory.created[0].wait_timeouts == [12.5]

    def test_no_wait_skips_waiting(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """wait=False should not block on completion."""
        manager.deploy_build(make_definition(), wait=False)

        assert "wait" not in factory.created[0].calls

    def test_reuses_process_across_deploys(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """Deploying the same definition twice should reuse one process."""
        manager.deploy_build(make_definition(), wait=False)
        manager.deploy_build(make_definition(), wait=False)

        assert len(factory.created) == 1
        assert factory.created[0].calls.count("status") == 2

    def test_source_change_keeps_same_process(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """Status after an update should route to the same process."""
        definition = make_definition()
        factory.statuses[definition.name] = BuildStatus.SOURCE_CHANGE

        manager.deploy_build(definition, wait=False)
        status = manager.get_build_status(definition)

        assert status == BuildStatus.RUNNING
        assert len(factory.created) == 1
        assert manager.registry.lookup(definition) is factory.created[0]

    def test_create_failure_propagates(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """Cluster errors should reach the caller without retry."""
        definition = make_definition()
        factory.statuses[definition.name] = BuildStatus.NOT_DEPLOYED
        manager.registry.resolve(definition)
        factory.created[0].create_error = ClusterError("quota exceeded")

        with pytest.raises(ClusterError, match="quota exceeded"):
            manager.deploy_build(definition)

        assert factory.created[0].calls == ["status", "delete", "create"]

    def test_wait_failure_propagates(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """Build failures while waiting should reach the caller."""
        definition = make_definition()
        manager.registry.resolve(definition)
        factory.created[0].wait_error = BuildFailedError("app", "Failed")

        with pytest.raises(BuildFailedError):
            manager.deploy_build(definition)

    def test_logs_decision(
        self,
        manager: BuildManager,
        factory: FakeFactory,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Each decision should be logged with name, status and force flag."""
        definition = make_definition(name="logged")
        factory.statuses[definition.name] = BuildStatus.OLD_IMAGE

        with caplog.at_level("INFO", logger="shared_builds.builds.service"):
            manager.deploy_build(definition, wait=False)

        assert "logged" in caplog.text
        assert "old_image" in caplog.text
        assert "force rebuild: False" in caplog.text


class TestDeployBuilds:
    """Tests for BuildManager.deploy_builds."""

    def test_reconciles_each_without_waiting(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """Each definition gets its own action set and nothing waits."""
        rebuild = make_definition(name="rebuild")
        update = make_definition(name="update")
        steady = make_definition(name="steady")
        factory.statuses.update(
            {
                "rebuild": BuildStatus.FAILED,
                "update": BuildStatus.SOURCE_CHANGE,
                "steady": BuildStatus.RUNNING,
            }
        )

        actions = manager.deploy_builds([rebuild, update, steady])

        assert actions == {
            rebuild: BuildAction.RECREATE,
            update: BuildAction.UPDATE,
            steady: BuildAction.NONE,
        }
        by_name = {p.name: p for p in factory.created}
        assert by_name["rebuild"].mutations == ["delete", "create"]
        assert by_name["update"].mutations == ["update"]
        assert by_name["steady"].mutations == []
        assert all("wait" not in p.calls for p in factory.created)
        assert all(p.current_status != BuildStatus.COMPLETE for p in factory.created)

    def test_empty_collection(self, manager: BuildManager) -> None:
        """An empty collection should do nothing."""
        assert manager.deploy_builds([]) == {}

    def test_failure_does_not_block_wait_of_siblings(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """One build failing its wait should not affect another."""
        bad = make_definition(name="bad")
        good = make_definition(name="good")
        manager.deploy_builds([bad, good])
        manager.registry.lookup(bad).wait_error = BuildFailedError("bad", "Failed")

        with pytest.raises(BuildFailedError):
            manager.wait_for_build_completion(bad)
        manager.wait_for_build_completion(good)

        assert manager.get_build_status(good) == BuildStatus.COMPLETE


class TestDeployedBuildOperations:
    """Tests for status, wait and delete on deployed builds."""

    def test_wait_for_completion(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """wait_for_build_completion should delegate with the timeout."""
        definition = make_definition()
        manager.deploy_build(definition, wait=False)

        manager.wait_for_build_completion(definition, timeout=3)

        assert factory.created[0].wait_timeouts == [3]

    def test_timeout_distinct_from_failure(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """A timeout should not be reported as a build failure."""
        definition = make_definition()
        manager.deploy_build(definition, wait=False)
        factory.created[0].wait_error = BuildTimeoutError("app", 1)

        with pytest.raises(BuildTimeoutError) as exc_info:
            manager.wait_for_build_completion(definition, timeout=1)

        assert not isinstance(exc_info.value, BuildFailedError)
        assert exc_info.value.code == "build_timeout"

    def test_delete_build(self, manager: BuildManager, factory: FakeFactory) -> None:
        """delete_build should delete cluster resources but keep the entry."""
        definition = make_definition()
        manager.deploy_build(definition, wait=False)

        manager.delete_build(definition)

        assert factory.created[0].calls[-1] == "delete"
        assert definition in manager.registry

    def test_get_build_status(
        self, manager: BuildManager, factory: FakeFactory
    ) -> None:
        """get_build_status should read from the tracked process."""
        definition = make_definition()
        factory.statuses[definition.name] = BuildStatus.RUNNING
        manager.deploy_build(definition, wait=False)

        assert manager.get_build_status(definition) == BuildStatus.RUNNING

    @pytest.mark.parametrize(
        "operation",
        [
            lambda m, d: m.get_build_status(d),
            lambda m, d: m.delete_build(d),
            lambda m, d: m.wait_for_build_completion(d),
            lambda m, d: m.wait_for_build_completion(d, timeout=1),
        ],
        ids=["status", "delete", "wait", "wait-timeout"],
    )
    def test_unknown_definition(self, operation, factory: FakeFactory) -> None:
        """Operations on undeployed builds should fail without cluster calls."""
        manager = BuildManager(BuildRegistry(factory))

        with pytest.raises(UnknownDefinitionError):
            operation(manager, make_definition())

        assert factory.created == []


class TestConcurrentDeploy:
    """Tests for concurrent deploys of the same definition."""

    def test_concurrent_deploys_share_one_process(self) -> None:
        """Concurrent deploys should construct one process and serialize reconcile."""
        factory = FakeFactory({"app": BuildStatus.NOT_DEPLOYED})
        manager = BuildManager(BuildRegistry(factory))
        barrier = threading.Barrier(8)
        errors: list[BaseException] = []

        def deploy() -> None:
            try:
                barrier.wait()
                manager.deploy_build(make_definition(), wait=False)
            except BaseException as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=deploy) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(factory.created) == 1
        # Only the first reconcile sees NOT_DEPLOYED; the rest see RUNNING
        assert factory.created[0].mutations == ["delete", "create"]


class TestCreateManager:
    """Tests for create_manager."""

    def test_builds_cluster_processes(self) -> None:
        """create_manager should wire settings into cluster processes."""
        client = MagicMock()
        settings = Settings(
            build_namespace="team-builds", force_rebuild=True, build_timeout=45
        )

        manager = create_manager(client, settings)
        process = manager.registry.resolve(make_definition())

        assert manager.force_rebuild is True
        assert isinstance(process, ClusterBuildProcess)
        assert process.namespace == "team-builds"
        assert process.default_timeout == 45
        assert process.client is client

    def test_default_settings(self) -> None:
        """create_manager without settings should load them from env."""
        manager = create_manager(MagicMock())
        assert manager.force_rebuild is False
        assert len(manager.registry) == 0
