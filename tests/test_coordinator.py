"""Tests for the lifecycle coordinator."""

import asyncio

import aiohttp
import pytest

from toolchain_manager.errors import (
    AlreadyInstalled,
    BackendError,
    BackendTimeout,
    BackendUnavailable,
    ConfirmationRequired,
    InstallCancelled,
    InstallFailed,
    LaunchFailed,
    NotInstalled,
    OperationInProgress,
    RevealFailed,
    SelectFailed,
    UninstallFailed,
    UnknownId,
)
from toolchain_manager.core import LifecycleCoordinator
from conftest import INSTALL_ROOT, FakeBackend


def selected_ids(registry):
    return [r.id for r in registry.all() if r.selected]


@pytest.mark.asyncio
async def test_refresh_builds_registry_from_catalog_and_installs(coordinator, registry):
    result = await coordinator.refresh()

    assert result.ok
    assert [r.id for r in registry.all()] == ["15.0", "14.3", "14.2"]
    active = registry.get("14.3")
    assert active.installed and active.selected
    assert active.path == INSTALL_ROOT / "14.3"
    assert not registry.get("15.0").installed


@pytest.mark.asyncio
async def test_refresh_keeps_local_installs_when_catalog_is_down(registry, clipboard):
    backend = FakeBackend(installed=("13.0",), active="13.0")
    backend.failures["fetch_catalog"] = aiohttp.ClientError("offline")
    coordinator = LifecycleCoordinator(registry, backend, clipboard)

    result = await coordinator.refresh()

    assert not result.ok
    assert isinstance(result.error, BackendUnavailable)
    record = registry.get("13.0")
    assert record.installed and record.selected and not record.listed


@pytest.mark.asyncio
async def test_install_marks_record_installed(coordinator, registry, backend):
    await coordinator.refresh()
    progress = []

    async def on_progress(name, done, total):
        progress.append((name, done, total))

    result = await coordinator.install("15.0", on_progress)

    assert result.ok and result.changed
    record = registry.get("15.0")
    assert record.installed and not record.selected
    assert record.path == INSTALL_ROOT / "15.0"
    assert progress == [("ide-15.0.zip", 100, 100)]
    assert backend.calls_to("unpack") == [("unpack", "15.0", INSTALL_ROOT / "15.0")]


@pytest.mark.asyncio
async def test_install_failure_leaves_record_available(coordinator, registry, backend):
    await coordinator.refresh()
    before = registry.all()
    backend.failures["unpack"] = BackendError("corrupt archive")

    result = await coordinator.install("15.0")

    assert not result.ok
    assert isinstance(result.error, InstallFailed)
    assert str(result.error.cause) == "corrupt archive"
    assert registry.all() == before


@pytest.mark.asyncio
async def test_install_timeout_is_reported_as_install_failed(coordinator, registry, backend):
    await coordinator.refresh()
    backend.failures["download"] = BackendTimeout("too slow")

    result = await coordinator.install("15.0")

    assert isinstance(result.error, InstallFailed)
    assert isinstance(result.error.cause, BackendTimeout)
    assert not registry.get("15.0").installed


@pytest.mark.asyncio
async def test_install_already_installed(coordinator, backend):
    await coordinator.refresh()

    result = await coordinator.install("14.3")

    assert isinstance(result.error, AlreadyInstalled)
    assert backend.calls_to("download") == []


@pytest.mark.asyncio
async def test_unknown_id_for_every_action(coordinator):
    await coordinator.refresh()
    for action in (coordinator.install, coordinator.select, coordinator.open,
                   coordinator.reveal, coordinator.copy_path, coordinator.uninstall):
        result = await action("99.9")
        assert isinstance(result.error, UnknownId), action.__name__


@pytest.mark.asyncio
async def test_concurrent_installs_of_same_id(coordinator, registry, backend):
    await coordinator.refresh()
    backend.gate = asyncio.Event()

    first = asyncio.create_task(coordinator.install("15.0"))
    await backend.started.wait()
    assert coordinator.is_busy("15.0")

    second = await coordinator.install("15.0")
    assert isinstance(second.error, OperationInProgress)

    backend.gate.set()
    assert (await first).ok
    assert len(backend.calls_to("download")) == 1
    assert registry.get("15.0").installed
    assert not coordinator.is_busy("15.0")


@pytest.mark.asyncio
async def test_installs_of_different_ids_run_concurrently(coordinator, registry, backend):
    await coordinator.refresh()
    backend.gate = asyncio.Event()

    first = asyncio.create_task(coordinator.install("15.0"))
    second = asyncio.create_task(coordinator.install("14.2"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert coordinator.is_busy("15.0") and coordinator.is_busy("14.2")

    backend.gate.set()
    results = await asyncio.gather(first, second)
    assert all(r.ok for r in results)


@pytest.mark.asyncio
async def test_cancel_install_leaves_record_available(coordinator, registry, backend):
    await coordinator.refresh()
    backend.gate = asyncio.Event()

    task = asyncio.create_task(coordinator.install("15.0"))
    await backend.started.wait()
    assert coordinator.cancel_install("15.0")

    result = await task
    assert isinstance(result.error, InstallFailed)
    assert isinstance(result.error.cause, InstallCancelled)
    record = registry.get("15.0")
    assert not record.installed and record.path is None
    assert backend.calls_to("unpack") == []
    assert not coordinator.is_busy("15.0")
    assert not coordinator.cancel_install("15.0")


@pytest.mark.asyncio
async def test_cancelling_the_caller_propagates(coordinator, registry, backend):
    await coordinator.refresh()
    backend.gate = asyncio.Event()

    task = asyncio.create_task(coordinator.install("15.0"))
    await backend.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert not registry.get("15.0").installed
    assert not coordinator.is_busy("15.0")


@pytest.mark.asyncio
async def test_select_not_installed(coordinator, registry, backend):
    await coordinator.refresh()
    before = registry.all()

    result = await coordinator.select("15.0")

    assert isinstance(result.error, NotInstalled)
    assert registry.all() == before
    assert backend.calls_to("activate") == []


@pytest.mark.asyncio
async def test_select_moves_active_flag(registry, clipboard):
    backend = FakeBackend(installed=("14.3", "14.2"), active="14.3")
    coordinator = LifecycleCoordinator(registry, backend, clipboard)
    await coordinator.refresh()

    result = await coordinator.select("14.2")

    assert result.ok and result.changed
    assert registry.get("14.3").selected is False
    assert registry.get("14.2").selected is True
    assert backend.calls_to("activate") == [("activate", INSTALL_ROOT / "14.2")]


@pytest.mark.asyncio
async def test_select_twice_is_idempotent(registry, clipboard):
    backend = FakeBackend(installed=("14.3", "14.2"), active="14.3")
    coordinator = LifecycleCoordinator(registry, backend, clipboard)
    await coordinator.refresh()

    await coordinator.select("14.2")
    after_first = registry.all()
    second = await coordinator.select("14.2")

    assert second.ok and not second.changed
    assert registry.all() == after_first
    assert len(backend.calls_to("activate")) == 1


@pytest.mark.asyncio
async def test_select_failure_keeps_previous_selection(registry, clipboard):
    backend = FakeBackend(installed=("14.3", "14.2"), active="14.3")
    backend.failures["activate"] = PermissionError("read-only filesystem")
    coordinator = LifecycleCoordinator(registry, backend, clipboard)
    await coordinator.refresh()

    result = await coordinator.select("14.2")

    assert isinstance(result.error, SelectFailed)
    assert selected_ids(registry) == ["14.3"]


@pytest.mark.asyncio
async def test_uninstall_requires_confirmation(coordinator, registry, backend):
    await coordinator.refresh()

    missing = await coordinator.uninstall("14.3")
    wrong = await coordinator.uninstall("14.3", coordinator.confirm_uninstall("15.0"))

    assert isinstance(missing.error, ConfirmationRequired)
    assert isinstance(wrong.error, ConfirmationRequired)
    assert registry.get("14.3").installed
    assert backend.calls_to("trash") == []


@pytest.mark.asyncio
async def test_confirmation_is_single_use(registry, clipboard):
    backend = FakeBackend(installed=("14.3",), active=None)
    backend.failures["trash"] = OSError("disk busy")
    coordinator = LifecycleCoordinator(registry, backend, clipboard)
    await coordinator.refresh()
    confirmation = coordinator.confirm_uninstall("14.3")

    first = await coordinator.uninstall("14.3", confirmation)
    again = await coordinator.uninstall("14.3", confirmation)

    assert isinstance(first.error, UninstallFailed)
    assert isinstance(again.error, ConfirmationRequired)
    assert registry.get("14.3").installed


@pytest.mark.asyncio
async def test_uninstall_selected_version_clears_selection(coordinator, registry, backend):
    await coordinator.refresh()

    result = await coordinator.uninstall("14.3", coordinator.confirm_uninstall("14.3"))

    assert result.ok
    record = registry.get("14.3")
    assert not record.installed and not record.selected and record.path is None
    assert selected_ids(registry) == []


@pytest.mark.asyncio
async def test_uninstall_drops_versions_missing_from_catalog(registry, clipboard):
    backend = FakeBackend(installed=("12.0",))
    coordinator = LifecycleCoordinator(registry, backend, clipboard)
    await coordinator.refresh()

    result = await coordinator.uninstall("12.0", coordinator.confirm_uninstall("12.0"))

    assert result.ok
    assert registry.get("12.0") is None
    assert result.record is None


@pytest.mark.asyncio
async def test_uninstall_not_installed(coordinator):
    await coordinator.refresh()

    result = await coordinator.uninstall("15.0", coordinator.confirm_uninstall("15.0"))

    assert isinstance(result.error, NotInstalled)


@pytest.mark.asyncio
async def test_install_select_uninstall_sequence(coordinator, registry, backend):
    await coordinator.refresh()

    assert (await coordinator.install("15.0")).ok
    assert (await coordinator.select("15.0")).ok
    assert selected_ids(registry) == ["15.0"]
    assert (await coordinator.uninstall("15.0", coordinator.confirm_uninstall("15.0"))).ok

    assert selected_ids(registry) == []
    assert backend.calls_to("trash") == [("trash", INSTALL_ROOT / "15.0")]


@pytest.mark.asyncio
async def test_every_snapshot_respects_selection_invariants(coordinator, registry, snapshots):
    await coordinator.refresh()
    await coordinator.install("15.0")
    await coordinator.install("14.2")
    await coordinator.select("15.0")
    await coordinator.select("14.2")
    await coordinator.uninstall("14.2", coordinator.confirm_uninstall("14.2"))
    await coordinator.select("14.3")

    assert snapshots
    for snapshot in snapshots:
        selected = [r for r in snapshot if r.selected]
        assert len(selected) <= 1
        assert all(r.installed for r in selected)


@pytest.mark.asyncio
async def test_copy_path_writes_to_clipboard(coordinator, registry, clipboard):
    await coordinator.refresh()
    before = registry.all()

    result = await coordinator.copy_path("14.3")

    assert result.ok and not result.changed
    assert clipboard.text == str(INSTALL_ROOT / "14.3")
    assert registry.all() == before


@pytest.mark.asyncio
async def test_open_and_reveal_call_backend(coordinator, backend):
    await coordinator.refresh()

    assert (await coordinator.open("14.3")).ok
    assert (await coordinator.reveal("14.3")).ok
    assert backend.calls_to("launch") == [("launch", INSTALL_ROOT / "14.3")]
    assert backend.calls_to("reveal") == [("reveal", INSTALL_ROOT / "14.3")]


@pytest.mark.asyncio
async def test_read_side_failures_do_not_touch_registry(coordinator, registry, backend):
    await coordinator.refresh()
    before = registry.all()
    backend.failures["launch"] = FileNotFoundError("xdg-open")
    backend.failures["reveal"] = FileNotFoundError("xdg-open")

    opened = await coordinator.open("14.3")
    revealed = await coordinator.reveal("14.3")

    assert isinstance(opened.error, LaunchFailed)
    assert isinstance(revealed.error, RevealFailed)
    assert registry.all() == before


@pytest.mark.asyncio
async def test_read_side_actions_wait_for_mutations(registry, clipboard):
    backend = FakeBackend(installed=("14.3",), active=None)
    backend.gate = asyncio.Event()
    coordinator = LifecycleCoordinator(registry, backend, clipboard)
    await coordinator.refresh()

    async def slow_trash(path):
        backend.calls.append(("trash", path))
        await backend.gate.wait()
        return path

    backend.trash = slow_trash
    task = asyncio.create_task(coordinator.uninstall("14.3", coordinator.confirm_uninstall("14.3")))
    await asyncio.sleep(0)

    result = await coordinator.copy_path("14.3")
    refreshed = await coordinator.refresh()

    assert isinstance(result.error, OperationInProgress)
    assert isinstance(refreshed.error, OperationInProgress)
    assert clipboard.text is None

    backend.gate.set()
    assert (await task).ok


@pytest.mark.asyncio
async def test_mutations_wait_out_a_running_refresh(coordinator, registry, backend):
    await coordinator.refresh()
    release = asyncio.Event()
    fetched = asyncio.Event()
    catalog = backend.catalog

    async def slow_fetch():
        fetched.set()
        await release.wait()
        return catalog

    backend.fetch_catalog = slow_fetch
    refreshing = asyncio.create_task(coordinator.refresh())
    await fetched.wait()

    install = await coordinator.install("15.0")
    select = await coordinator.select("14.3")
    again = await coordinator.refresh()

    assert isinstance(install.error, OperationInProgress)
    assert isinstance(select.error, OperationInProgress)
    assert isinstance(again.error, OperationInProgress)
    release.set()
    assert (await refreshing).ok
    assert backend.calls_to("download") == []
    assert not registry.get("15.0").installed
    assert (await coordinator.install("15.0")).ok


@pytest.mark.asyncio
async def test_rejected_install_destination_is_install_failed(coordinator, registry, backend):
    await coordinator.refresh()
    before = registry.all()

    def reject(version_id):
        raise BackendError(f"{version_id!r} is not a valid install directory name")

    backend.install_destination = reject
    result = await coordinator.install("15.0")

    assert isinstance(result.error, InstallFailed)
    assert isinstance(result.error.cause, BackendError)
    assert registry.all() == before
    assert backend.calls_to("download") == []
    assert not coordinator.is_busy("15.0")


@pytest.mark.asyncio
async def test_select_waits_for_active_uninstall_to_finish(registry, clipboard):
    backend = FakeBackend(installed=("14.3", "14.2"), active="14.3")
    coordinator = LifecycleCoordinator(registry, backend, clipboard)
    await coordinator.refresh()
    token = coordinator.confirm_uninstall("14.3")
    trash_started = asyncio.Event()
    release = asyncio.Event()
    plain_trash = backend.trash

    async def slow_trash(path):
        trash_started.set()
        await release.wait()
        return await plain_trash(path)

    backend.trash = slow_trash
    removing = asyncio.create_task(coordinator.uninstall("14.3", token))
    await trash_started.wait()
    selecting = asyncio.create_task(coordinator.select("14.2"))
    await asyncio.sleep(0)
    assert backend.calls_to("activate") == []

    release.set()
    removed, selected = await asyncio.gather(removing, selecting)

    assert removed.ok and selected.ok
    assert selected_ids(registry) == ["14.2"]
    assert backend.active == INSTALL_ROOT / "14.2"
