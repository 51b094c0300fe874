"""Tests for the addon manager."""
import json
from pathlib import Path

import pytest

from llam.addon import Addon, SomeOrAll
from llam.errors import ContextError
from llam.manager import AddonManager, UpdateAction
from llam.manifest import editor
from llam.reporting import Outcome
from llam.settings import Settings

LOVE2D_URL = "https://github.com/LuaCATS/love2d.git"


@pytest.fixture
def manager(project, fake_git, reporter, tmp_path):
    settings = Settings(staging_dir=tmp_path / "staging")
    return AddonManager(project, git=fake_git, reporter=reporter, settings=settings)


def saved_addons(project: Path) -> dict:
    data = json.loads((project / ".luarc.json").read_text())
    return data["workspace"]["addons"]


class TestAdd:
    """Tests for AddonManager.add."""

    def test_fresh_install(self, manager, project, fake_git):
        """Test a new addon is cloned, moved into place and recorded."""
        result = manager.add([Addon.parse("love2d")])

        assert result.ok
        assert result.succeeded == 1
        assert (project / ".addons" / "love2d" / ".git").is_dir()
        assert fake_git.calls[0][0] == "clone"
        assert fake_git.calls[0][1].startswith("llam-love2d-")
        assert fake_git.calls[0][2] == LOVE2D_URL

        data = json.loads((project / ".luarc.json").read_text())
        assert data["workspace"]["addons"] == {"love2d": {"name": "love2d"}}
        assert data["workspace"]["userThirdParty"] == [".addons"]

    def test_fresh_install_checks_out_target(self, manager, fake_git, tmp_path):
        """Test the declared branch and checksum are applied before the move."""
        manager.add([Addon.parse("love2d@dev#abc123")])

        assert fake_git.ops("llam-love2d-abc123") == ["clone", "switch_branch", "hard_reset"]
        assert ("hard_reset", "llam-love2d-abc123", "abc123") in fake_git.calls
        assert not (tmp_path / "staging" / "llam-love2d-abc123").exists()

    def test_add_is_idempotent(self, manager, project, fake_git):
        """Test adding the same addon twice clones once and writes the same manifest."""
        manager.add([Addon.parse("love2d")])
        first = (project / ".luarc.json").read_text()

        result = manager.add([Addon.parse("love2d")])

        assert result.ok
        assert fake_git.ops().count("clone") == 1
        assert (project / ".luarc.json").read_text() == first

    def test_drift_warning(self, manager, project, fake_git, reporter, write_manifest, checkout):
        """Test a new pin on an installed addon warns instead of reinstalling."""
        write_manifest({"workspace": {"addons": {"love2d": {"name": "love2d", "checksum": "abc"}}}})
        checkout("love2d")
        fake_git.revisions["love2d"] = "abc"

        result = manager.add([Addon.parse("love2d#def")])

        assert result.ok
        assert "love2d update available" in reporter.messages(Outcome.WARNING)
        assert "clone" not in fake_git.ops()
        assert "hard_reset" not in fake_git.ops()
        assert saved_addons(project)["love2d"]["checksum"] == "def"

    def test_no_drift(self, manager, fake_git, reporter, write_manifest, checkout):
        write_manifest({"workspace": {"addons": {"love2d": {"name": "love2d", "branch": "main"}}}})
        checkout("love2d")

        manager.add([Addon.parse("love2d@main")])

        assert reporter.messages(Outcome.WARNING) == []
        assert fake_git.ops() == ["current_branch"]

    def test_missing_checkout_is_reinstalled(self, manager, project, fake_git, write_manifest):
        write_manifest({"workspace": {"addons": {"love2d": {"name": "love2d"}}}})

        result = manager.add([Addon.parse("love2d")])

        assert result.ok
        assert fake_git.ops().count("clone") == 1
        assert (project / ".addons" / "love2d").is_dir()

    def test_clone_failure_continues(self, manager, project, fake_git, reporter, tmp_path):
        """Test one failed clone does not stop the batch."""
        fake_git.fail("clone", "llam-broken-abc")

        result = manager.add([Addon.parse("broken#abc"), Addon.parse("love2d")])

        assert not result.ok
        assert result.total == 2
        assert result.succeeded == 1
        assert [f.addon for f in result.failures] == ["broken"]
        assert any("failed to clone addon" in m for m in reporter.messages(Outcome.ERROR))
        assert (project / ".addons" / "love2d").is_dir()
        assert not (project / ".addons" / "broken").exists()
        assert not (tmp_path / "staging" / "llam-broken-abc").exists()
        assert set(saved_addons(project)) == {"broken", "love2d"}

    def test_failed_reset_cleans_staging(self, manager, project, fake_git, tmp_path):
        fake_git.fail("hard_reset")

        result = manager.add([Addon.parse("love2d#abc")])

        assert not result.ok
        assert not (tmp_path / "staging" / "llam-love2d-abc").exists()
        assert not (project / ".addons" / "love2d").exists()

    def test_register_third_party_once(self, manager, project, write_manifest):
        write_manifest({"workspace": {"userThirdParty": ["other", ".addons"]}})

        manager.add([Addon.parse("love2d")])

        data = json.loads((project / ".luarc.json").read_text())
        assert data["workspace"]["userThirdParty"] == ["other", ".addons"]

    def test_summary(self, manager, reporter):
        manager.add([Addon.parse("love2d"), Addon.parse("busted")])

        assert "[Add] 2/2 Finished!" in reporter.messages(Outcome.SUCCESS)

    def test_checksum_with_path_separator(self, manager, project, fake_git, tmp_path):
        """Test a checksum containing '/' still stages in a single directory."""
        result = manager.add([Addon.parse("love2d#release/1.0")])

        assert result.ok
        assert ("hard_reset", "llam-love2d-release_1.0", "release/1.0") in fake_git.calls
        assert (project / ".addons" / "love2d" / ".git").is_dir()
        assert list((tmp_path / "staging").iterdir()) == []
        assert saved_addons(project)["love2d"]["checksum"] == "release/1.0"

    def test_interrupt_keeps_completed_work(self, manager, project, fake_git, tmp_path):
        """Test an interrupt stops scheduling and still records finished clones."""
        fake_git.fail("hard_reset", "llam-busted-abc", KeyboardInterrupt())

        result = manager.add([
            Addon.parse("love2d"),
            Addon.parse("busted#abc"),
            Addon.parse("penlight"),
        ])

        assert result.interrupted
        assert not result.ok
        assert result.succeeded == 1
        assert (project / ".addons" / "love2d").is_dir()
        assert "love2d" in saved_addons(project)
        assert not (project / ".addons" / "busted").exists()
        assert not (tmp_path / "staging" / "llam-busted-abc").exists()
        assert not any(call[1].startswith("llam-penlight") for call in fake_git.calls)

    def test_persist_failure_keeps_clones(self, manager, project, reporter, write_manifest, monkeypatch):
        """Test a failed manifest write is reported and does not undo clones."""
        write_manifest({})

        def failing_save(manifest):
            raise ContextError(f"failed to write {manifest.path}", OSError("disk full"))

        monkeypatch.setattr(manager.store, "save", failing_save)

        result = manager.add([Addon.parse("love2d")])

        assert not result.persisted
        assert not result.ok
        assert result.succeeded == 1
        assert (project / ".addons" / "love2d" / ".git").is_dir()
        assert any(
            m.startswith("failed to write updates to .luarc.json")
            for m in reporter.messages(Outcome.ERROR)
        )


class TestUpdate:
    """Tests for AddonManager.update."""

    @pytest.fixture
    def installed(self, write_manifest, checkout):
        """Manifest plus checkouts for the given entries."""

        def _install(entries: dict):
            write_manifest({"workspace": {"addons": entries}})
            for name in entries:
                checkout(name)

        return _install

    def test_branch_switch(self, manager, fake_git, installed):
        """Test a declared branch is fetched, switched to and pulled without a reset."""
        installed({"love2d": {"name": "love2d", "branch": "dev"}})

        result = manager.update(SomeOrAll.all())

        assert result.ok
        assert result.actions["love2d"] is UpdateAction.BRANCH_SWITCH
        assert fake_git.ops("love2d") == [
            "current_branch", "default_branch", "current_revision",
            "fetch", "switch_branch", "pull",
        ]
        assert ("switch_branch", "love2d", "dev") in fake_git.calls

    def test_branch_switch_with_checksum(self, manager, fake_git, installed):
        installed({"love2d": {"name": "love2d", "branch": "dev", "checksum": "abc"}})

        manager.update(SomeOrAll.all())

        assert fake_git.ops("love2d")[-1] == "hard_reset"
        assert fake_git.calls[-1] == ("hard_reset", "love2d", "abc")

    def test_default_branch_sync(self, manager, fake_git, installed):
        installed({"love2d": {"name": "love2d"}})
        fake_git.branches["love2d"] = "feature"
        fake_git.defaults["love2d"] = "main"

        result = manager.update(SomeOrAll.all())

        assert result.actions["love2d"] is UpdateAction.DEFAULT_BRANCH_SYNC
        assert ("switch_branch", "love2d", "main") in fake_git.calls

    def test_pinned_checksum_converges(self, manager, fake_git, installed):
        """Test a pin is reset to once and is a no-op afterwards."""
        installed({"love2d": {"name": "love2d", "checksum": "abc123"}})
        fake_git.revisions["love2d"] = "f" * 40

        first = manager.update(SomeOrAll.all())

        assert first.actions["love2d"] is UpdateAction.PIN_TO_CHECKSUM
        assert fake_git.ops("love2d")[-2:] == ["fetch", "hard_reset"]
        assert fake_git.calls[-1] == ("hard_reset", "love2d", "abc123")

        fake_git.calls.clear()
        second = manager.update(SomeOrAll.all())

        assert second.actions["love2d"] is UpdateAction.NOOP
        assert "fetch" not in fake_git.ops()

    def test_follow_latest(self, manager, fake_git, installed):
        installed({"love2d": {"name": "love2d"}})
        fake_git.revisions["love2d"] = "a" * 40
        fake_git.latest[("love2d", "main")] = "b" * 40

        result = manager.update(SomeOrAll.all())

        assert result.actions["love2d"] is UpdateAction.FOLLOW_LATEST
        assert ("latest_revision", "love2d", "main") in fake_git.calls
        assert fake_git.calls[-1] == ("hard_reset", "love2d", "b" * 40)

    def test_follow_latest_tracks_declared_branch(self, manager, fake_git, installed):
        installed({"love2d": {"name": "love2d", "branch": "dev"}})
        fake_git.branches["love2d"] = "dev"
        fake_git.latest[("love2d", "dev")] = "c" * 40

        manager.update(SomeOrAll.all())

        assert ("latest_revision", "love2d", "dev") in fake_git.calls
        assert fake_git.calls[-1] == ("hard_reset", "love2d", "c" * 40)

    def test_up_to_date(self, manager, fake_git, reporter, installed):
        installed({"love2d": {"name": "love2d"}})

        result = manager.update(SomeOrAll.all())

        assert result.actions["love2d"] is UpdateAction.NOOP
        assert "fetch" not in fake_git.ops()
        assert "love2d is up to date" in reporter.messages(Outcome.SUCCESS)

    def test_missing_checkout_is_cloned(self, manager, project, fake_git, write_manifest):
        write_manifest({"workspace": {"addons": {"love2d": {"name": "love2d"}}}})

        result = manager.update(SomeOrAll.all())

        assert result.actions["love2d"] is UpdateAction.FRESH_CLONE
        assert (project / ".addons" / "love2d").is_dir()

    def test_unmanaged_is_skipped(self, manager, fake_git, installed):
        """Test addons missing from the manifest are skipped, not added."""
        installed({"love2d": {"name": "love2d"}})

        result = manager.update(SomeOrAll.some([Addon.parse("ghost")]))

        assert result.ok
        assert result.skipped == ["ghost"]
        assert result.total == 0
        assert fake_git.calls == []

    def test_failed_step_short_circuits(self, manager, project, fake_git, reporter, installed):
        """Test a failed fetch stops that addon only."""
        installed({
            "love2d": {"name": "love2d", "branch": "dev"},
            "busted": {"name": "busted", "branch": "dev"},
        })
        fake_git.fail("fetch", "love2d")

        result = manager.update(SomeOrAll.all())

        assert not result.ok
        assert [(f.addon, f.phase) for f in result.failures] == [("love2d", "fetch")]
        assert "switch_branch" not in fake_git.ops("love2d")
        assert result.actions["busted"] is UpdateAction.BRANCH_SWITCH
        assert any("failed to fetch" in m for m in reporter.messages(Outcome.ERROR))

    def test_failed_observation_is_per_addon(self, manager, fake_git, installed):
        installed({"love2d": {"name": "love2d"}})
        fake_git.fail("default_branch", "love2d")

        result = manager.update(SomeOrAll.all())

        assert [(f.addon, f.phase) for f in result.failures] == [("love2d", "inspect")]

    def test_declaration_is_merged(self, manager, project, installed):
        installed({"love2d": {"name": "love2d", "branch": "main"}})

        manager.update([Addon.parse("love2d#abc")])

        assert saved_addons(project)["love2d"] == {"name": "love2d", "branch": "main", "checksum": "abc"}

    def test_interrupt_persists_finished_updates(self, manager, project, fake_git, installed):
        installed({
            "love2d": {"name": "love2d"},
            "busted": {"name": "busted", "branch": "dev"},
            "penlight": {"name": "penlight", "branch": "dev"},
        })
        fake_git.fail("fetch", "busted", KeyboardInterrupt())

        result = manager.update([Addon.parse("love2d#abc"), Addon.parse("busted"), Addon.parse("penlight")])

        assert result.interrupted
        assert result.actions == {"love2d": UpdateAction.PIN_TO_CHECKSUM}
        assert fake_git.ops("penlight") == []
        assert saved_addons(project)["love2d"]["checksum"] == "abc"

    def test_persist_failure_is_reported(self, manager, fake_git, reporter, installed, monkeypatch):
        installed({"love2d": {"name": "love2d", "checksum": "abc"}})

        def failing_save(manifest):
            raise ContextError(f"failed to write {manifest.path}", OSError("disk full"))

        monkeypatch.setattr(manager.store, "save", failing_save)

        result = manager.update(SomeOrAll.all())

        assert not result.persisted
        assert not result.ok
        assert fake_git.revisions["love2d"] == "abc"
        assert reporter.by_outcome(Outcome.ERROR)[0].phase == "persist"


class TestRemove:
    """Tests for AddonManager.remove."""

    def test_remove_all(self, manager, project, write_manifest, checkout):
        """Test every entry is removed, including ones with no checkout."""
        write_manifest({"workspace": {"addons": {"a": {"name": "a"}, "b": {"name": "b"}}}})
        checkout("a")

        result = manager.remove(SomeOrAll.all())

        assert result.ok
        assert result.succeeded == 2
        assert saved_addons(project) == {}
        assert not (project / ".addons" / "a").exists()

    def test_remove_unknown_is_not_an_error(self, manager, project, write_manifest):
        write_manifest({"workspace": {"addons": {"a": {"name": "a"}}}})

        result = manager.remove([Addon.parse("ghost")])

        assert result.ok
        assert set(saved_addons(project)) == {"a"}

    def test_deletion_failure_is_fatal(self, manager, project, write_manifest, checkout, monkeypatch):
        """Test a failed deletion aborts but persists completed removals."""
        write_manifest({"workspace": {"addons": {n: {"name": n} for n in ("a", "b", "c")}}})
        for name in ("a", "b", "c"):
            checkout(name)
        real_delete = AddonManager._delete

        def flaky_delete(path):
            if path.name == "b":
                raise PermissionError("denied")
            return real_delete(path)

        monkeypatch.setattr(AddonManager, "_delete", staticmethod(flaky_delete))

        with pytest.raises(ContextError):
            manager.remove(SomeOrAll.all())

        remaining = saved_addons(project)
        assert "a" not in remaining
        assert "c" in remaining
        assert (project / ".addons" / "c").exists()

    def test_interrupt_persists_removals(self, manager, project, write_manifest, checkout, monkeypatch):
        write_manifest({"workspace": {"addons": {n: {"name": n} for n in ("a", "b", "c")}}})
        for name in ("a", "b", "c"):
            checkout(name)
        real_delete = AddonManager._delete

        def interrupted_delete(path):
            if path.name == "b":
                raise KeyboardInterrupt()
            return real_delete(path)

        monkeypatch.setattr(AddonManager, "_delete", staticmethod(interrupted_delete))

        result = manager.remove(SomeOrAll.all())

        assert result.interrupted
        assert result.succeeded == 1
        assert set(saved_addons(project)) == {"c"}
        assert (project / ".addons" / "c").exists()


class TestClean:
    """Tests for AddonManager.clean."""

    def test_clean_removes_unknown(self, manager, project, write_manifest, checkout):
        """Test only entries missing from the manifest are deleted."""
        path = write_manifest({"workspace": {"addons": {"a": {"name": "a"}, "c": {"name": "c"}}}})
        for name in ("a", "b", "c"):
            checkout(name)
        (project / ".addons" / "notes.txt").write_text("x")
        before = path.read_text()

        result = manager.clean()

        assert result.ok
        assert result.total == 2
        assert sorted(p.name for p in (project / ".addons").iterdir()) == ["a", "c"]
        assert path.read_text() == before

    def test_deletion_failure_continues(self, manager, project, reporter, write_manifest, checkout, monkeypatch):
        """Test a failed deletion is reported and the scan goes on."""
        write_manifest({"workspace": {"addons": {"a": {"name": "a"}}}})
        for name in ("a", "b", "d"):
            checkout(name)
        real_delete = AddonManager._delete

        def flaky_delete(path):
            if path.name == "b":
                raise PermissionError("denied")
            return real_delete(path)

        monkeypatch.setattr(AddonManager, "_delete", staticmethod(flaky_delete))

        result = manager.clean()

        assert not result.ok
        assert result.total == 2
        assert result.succeeded == 1
        assert [(f.addon, f.phase) for f in result.failures] == [("b", "delete")]
        assert (project / ".addons" / "b").exists()
        assert not (project / ".addons" / "d").exists()
        assert (project / ".addons" / "a").exists()
        assert any("failed to remove directory" in m for m in reporter.messages(Outcome.ERROR))

    def test_clean_without_addons_dir(self, manager, write_manifest):
        write_manifest({})

        result = manager.clean()

        assert result.ok
        assert result.total == 0


class TestConfigure:
    """Tests for AddonManager.configure."""

    def test_edit_is_persisted(self, manager, project, write_manifest):
        write_manifest({"runtime": {"version": "LuaJIT"}})

        added = manager.configure(lambda m: editor.disable_diagnostics(m, ["lowercase-global"]))

        data = json.loads((project / ".luarc.json").read_text())
        assert added == 1
        assert data == {"runtime": {"version": "LuaJIT"}, "diagnostics": {"disable": ["lowercase-global"]}}
