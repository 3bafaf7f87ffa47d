#!/usr/bin/env python3
"""
Integration tests for the provisioning flow.

These tests drive RepoProvisioner end to end with an in-memory git driver and
fake platform providers, covering single and multi repository runs, upstream
assignment, branch propagation and failure recovery.
"""

import os

import pytest

from conftest import FakeGit, FakeProvider, fake_credentials
from error_handling import (
    AuthFailureError,
    ErrorContext,
    NameConflictError,
    NetworkFailureError,
    UserCancelled,
)
from repo_provisioner import (
    ProvisioningRequest,
    ProvisioningState,
    RemoteRepoHandle,
    RemoteRepoProvider,
    ProvisionerConfig,
    RepoProvisioner,
)


def single_request(**overrides):
    values = dict(repo_name="demo", platforms=["github"], main_branch="main")
    values.update(overrides)
    return ProvisioningRequest(**values)


def multi_request(**overrides):
    values = dict(
        repo_name="demo",
        platforms=["github", "gitee"],
        is_multi_repo=True,
        multi_type="cross-platform",
        visibility="public",
        main_branch="main",
        need_dev_branch=True,
        develop_branch="develop",
    )
    values.update(overrides)
    return ProvisioningRequest(**values)


class TestSingleRepository:
    """Single platform runs."""

    def test_success_wires_origin_and_keeps_main_checked_out(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        result = provisioner.provision(single_request())

        assert result
        assert result.state == ProvisioningState.DONE
        assert list(git.remotes) == ["origin"]
        assert git.remotes["origin"] == "git@github.com:octo/demo.git"
        assert git.current == "main"
        assert git.pushes == [("origin", "main", True)]
        assert (tmp_path / ".gitignore").exists()
        assert result.cleanup is None

    def test_branch_renamed_before_first_push(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path, default_branch="master")
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        provisioner.provision(single_request(main_branch="trunk"))

        names = git.call_names()
        assert names.index("rename_current_branch") < names.index("push")
        assert git.pushes[0] == ("origin", "trunk", True)

    def test_no_rename_when_default_matches(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path, default_branch="main")
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        assert provisioner.provision(single_request())
        assert "rename_current_branch" not in git.call_names()

    def test_only_gitignore_is_staged(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        provisioner.provision(single_request())

        assert ("add", [".gitignore"]) in git.calls
        assert ("commit", "chore: add .gitignore") in git.calls

    def test_develop_branch_created_pushed_and_left(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        result = provisioner.provision(single_request(need_dev_branch=True, develop_branch="develop"))

        assert result
        assert git.pushes == [("origin", "main", True), ("origin", "develop", True)]
        assert "develop" in git.branches
        assert git.current == "main"
        assert ProvisioningState.BRANCH_PROPAGATION in provisioner.history

    def test_develop_equal_to_main_is_a_noop(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        result = provisioner.provision(single_request(need_dev_branch=True, develop_branch="main"))

        assert result
        assert "checkout_new_branch" not in git.call_names()
        assert git.pushes == [("origin", "main", True)]

    def test_remote_creation_failure_touches_nothing_local(self, tmp_path, make_provisioner):
        git = FakeGit(tmp_path)
        error = AuthFailureError("bad token", ErrorContext(operation="create_remote_repo", platform="github"))
        provisioner = make_provisioner(git, FakeProvider({"github": error}))

        result = provisioner.provision(single_request())

        assert not result
        assert result.state == ProvisioningState.FAILED
        assert git.calls == []
        assert result.cleanup is None
        assert not (tmp_path / ".gitignore").exists()

    def test_user_cancel_is_reported_without_rollback(self, tmp_path, make_provisioner):
        git = FakeGit(tmp_path)
        provider = FakeProvider({"github": UserCancelled("User cancelled github repository creation")})
        provisioner = make_provisioner(git, provider)

        result = provisioner.provision(single_request())

        assert not result
        assert result.cancelled
        assert result.cleanup is None
        assert git.calls == []

    def test_push_permission_error_rolls_back(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path, fail_on={"push": lambda *args: True})
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        result = provisioner.provision(single_request())

        assert not result
        assert result.cleanup is not None and result.cleanup.success
        assert not (tmp_path / ".git").exists()
        assert not (tmp_path / ".gitignore").exists()

    @pytest.mark.parametrize("failing_step", ["init", "add", "commit", "add_remote", "checkout_new_branch", "checkout"])
    def test_any_local_failure_cleans_up_once(self, tmp_path, handles, make_provisioner, failing_step, monkeypatch):
        import repo_provisioner

        calls = []
        real_cleanup = repo_provisioner.cleanup_on_failure

        def counting_cleanup(working_dir, logger=None):
            calls.append(working_dir)
            return real_cleanup(working_dir, logger)

        monkeypatch.setattr(repo_provisioner, "cleanup_on_failure", counting_cleanup)
        git = FakeGit(tmp_path, fail_on={failing_step: lambda *args: True})
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        result = provisioner.provision(single_request(need_dev_branch=True, develop_branch="develop"))

        assert not result
        assert calls == [str(tmp_path)]
        assert not (tmp_path / ".git").exists()
        assert not (tmp_path / ".gitignore").exists()

    def test_reused_provisioner_rolls_back_every_run(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path, fail_on={"push": lambda *args: True})
        provisioner = make_provisioner(git, FakeProvider({"github": handles["github"]}))

        first = provisioner.provision(single_request())
        first_history = list(provisioner.history)
        second = provisioner.provision(single_request())

        for result in (first, second):
            assert not result
            assert result.cleanup is not None and result.cleanup.success
        assert not (tmp_path / ".git").exists()
        assert not (tmp_path / ".gitignore").exists()
        assert git.call_names().count("init") == 2
        assert provisioner.history == first_history
        assert provisioner.history[0] == ProvisioningState.COLLECTING
        assert provisioner.history.count(ProvisioningState.FAILED) == 1

    def test_existing_repository_is_refused(self, tmp_path, handles, make_provisioner):
        (tmp_path / ".git").mkdir()
        provider = FakeProvider({"github": handles["github"]})
        provisioner = make_provisioner(FakeGit(tmp_path), provider)

        result = provisioner.provision(single_request())

        assert not result
        assert provider.calls == []
        # pre-existing repository must survive
        assert (tmp_path / ".git").exists()

    def test_invalid_request_fails_before_any_call(self, tmp_path, handles, make_provisioner):
        provider = FakeProvider({"github": handles["github"]})
        provisioner = make_provisioner(FakeGit(tmp_path), provider)

        result = provisioner.provision(single_request(platforms=["github", "gitee"]))

        assert not result
        assert provider.calls == []


class TestMultiRepository:
    """Multi platform runs."""

    def test_cross_platform_scenario(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provider = FakeProvider({"github": handles["github"], "gitee": handles["gitee"]})
        provisioner = make_provisioner(git, provider)

        result = provisioner.provision(multi_request())

        assert result
        assert git.remotes == {
            "origin": "git@github.com:octo/demo.git",
            "gitee": "git@gitee.com:mayun/demo.git",
        }
        assert git.current == "main"
        assert set(git.branches) == {"main", "develop"}
        assert ("origin", "main", True) in git.pushes
        assert ("gitee", "main", False) in git.pushes
        assert ("origin", "develop", True) in git.pushes
        assert ("gitee", "develop", False) in git.pushes
        assert ("add", ["."]) in git.calls
        assert ("commit", "Initial commit") in git.calls

    def test_origin_is_first_successful_platform(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provider = FakeProvider({
            "github": UserCancelled("User cancelled github repository creation"),
            "gitee": handles["gitee"],
        })
        provisioner = make_provisioner(git, provider)

        result = provisioner.provision(multi_request())

        assert result
        assert result.skipped == ["github"]
        assert git.remotes == {"origin": "git@gitee.com:mayun/demo.git"}
        assert git.pushes[0] == ("origin", "main", True)

    def test_origin_follows_request_order(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provider = FakeProvider({"github": handles["github"], "gitee": handles["gitee"]})
        provisioner = make_provisioner(git, provider)

        provisioner.provision(multi_request(platforms=["gitee", "github"]))

        assert git.remotes["origin"] == "git@gitee.com:mayun/demo.git"
        assert git.remotes["github"] == "git@github.com:octo/demo.git"
        assert [c[0] for c in provider.calls] == ["gitee", "github"]

    def test_gitee_name_conflict_cancelled(self, tmp_path, handles, make_provisioner, monkeypatch):
        git = FakeGit(tmp_path)
        provider = RemoteRepoProvider(ProvisionerConfig(working_dir=str(tmp_path), show_progress=False))

        def fake_create(platform, repo_name, visibility, description, credential):
            if platform == "gitee":
                raise NameConflictError("gitee repository name 'demo' is already taken",
                                        ErrorContext(operation="create_remote_repo", platform="gitee"))
            return handles["github"]

        monkeypatch.setattr(provider, "_create_repo_provider_agnostic", fake_create)
        asked = []

        def cancel(platform, name):
            asked.append((platform, name))
            return None

        provisioner = make_provisioner(git, provider, on_name_conflict=cancel)

        result = provisioner.provision(multi_request())

        assert result
        assert asked == [("gitee", "demo")]
        assert result.skipped == ["gitee"]
        assert list(git.remotes) == ["origin"]
        assert "gitee" not in git.remotes

    def test_failed_platform_is_excluded_and_run_continues(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        error = NetworkFailureError("gitee could not be reached",
                                    ErrorContext(operation="create_remote_repo", platform="gitee"))
        provider = FakeProvider({"github": handles["github"], "gitee": error})
        provisioner = make_provisioner(git, provider)

        result = provisioner.provision(multi_request())

        assert result
        assert "gitee" in result.failed
        assert list(git.remotes) == ["origin"]
        assert all(remote == "origin" for remote, _, _ in git.pushes)

    def test_declining_local_init_keeps_directory_untouched(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provider = FakeProvider({"github": handles["github"], "gitee": handles["gitee"]})
        provisioner = make_provisioner(git, provider, confirm=False)

        result = provisioner.provision(multi_request())

        assert result
        assert set(result.handles) == {"github", "gitee"}
        assert git.calls == []
        assert os.listdir(tmp_path) == []

    def test_no_remote_created_still_initializes_locally(self, tmp_path):
        git = FakeGit(tmp_path)
        provider = FakeProvider({
            "github": AuthFailureError("bad token", ErrorContext(operation="create_remote_repo")),
            "gitee": UserCancelled("User cancelled gitee repository creation"),
        })
        asked = []

        def confirm():
            asked.append(True)
            return True

        provisioner = RepoProvisioner(
            ProvisionerConfig(working_dir=str(tmp_path), show_progress=False),
            credential_resolver=fake_credentials,
            confirm_local_init=confirm,
            provider=provider,
            git=git,
        )

        result = provisioner.provision(multi_request())

        assert result
        assert asked == [True]
        assert result.skipped == ["gitee"] and "github" in result.failed
        assert (tmp_path / ".git").exists()
        assert (tmp_path / ".gitignore").exists()
        assert git.remotes == {} and result.remotes == {}
        assert git.pushes == []
        # develop branch is still created locally, main stays checked out
        assert "develop" in git.branches
        assert git.current == "main"
        assert result.cleanup is None

    def test_no_remote_created_and_local_init_declined(self, tmp_path, make_provisioner):
        git = FakeGit(tmp_path)
        provider = FakeProvider({
            "github": UserCancelled("User cancelled github repository creation"),
            "gitee": UserCancelled("User cancelled gitee repository creation"),
        })
        provisioner = make_provisioner(git, provider, confirm=False)

        result = provisioner.provision(multi_request())

        assert result
        assert result.skipped == ["github", "gitee"]
        assert git.calls == []
        assert os.listdir(tmp_path) == []
        assert provisioner.history[-2:] == [ProvisioningState.CONFIRM_LOCAL_INIT, ProvisioningState.DONE]

    def test_push_failures_are_best_effort(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path, fail_on={"push": lambda remote, branch, upstream: remote == "gitee"})
        provider = FakeProvider({"github": handles["github"], "gitee": handles["gitee"]})
        provisioner = make_provisioner(git, provider)

        result = provisioner.provision(multi_request())

        assert result
        assert len(result.warnings) == 2
        assert ("origin", "develop", True) in git.pushes
        assert git.current == "main"
        assert (tmp_path / ".git").exists()

    def test_local_init_failure_rolls_back(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path, fail_on={"commit": lambda message: True})
        provider = FakeProvider({"github": handles["github"], "gitee": handles["gitee"]})
        provisioner = make_provisioner(git, provider)

        result = provisioner.provision(multi_request())

        assert not result
        assert result.cleanup is not None
        assert not (tmp_path / ".git").exists()
        assert not (tmp_path / ".gitignore").exists()

    def test_develop_equal_to_main_skips_propagation(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provider = FakeProvider({"github": handles["github"], "gitee": handles["gitee"]})
        provisioner = make_provisioner(git, provider)

        result = provisioner.provision(multi_request(develop_branch="main"))

        assert result
        assert "checkout_new_branch" not in git.call_names()
        assert {branch for _, branch, _ in git.pushes} == {"main"}

    def test_same_platform_runs_same_path(self, tmp_path, make_provisioner):
        git = FakeGit(tmp_path)
        handle = RemoteRepoHandle(platform="gitee", owner="mayun", name="demo")
        provisioner = make_provisioner(git, FakeProvider({"gitee": handle}))

        result = provisioner.provision(multi_request(platforms=["gitee"], multi_type="same-platform"))

        assert result
        assert git.remotes == {"origin": "git@gitee.com:mayun/demo.git"}

    def test_state_history(self, tmp_path, handles, make_provisioner):
        git = FakeGit(tmp_path)
        provider = FakeProvider({"github": handles["github"], "gitee": handles["gitee"]})
        provisioner = make_provisioner(git, provider)

        provisioner.provision(multi_request())

        assert provisioner.history == [
            ProvisioningState.COLLECTING,
            ProvisioningState.CREATING_REMOTES,
            ProvisioningState.CONFIRM_LOCAL_INIT,
            ProvisioningState.INITIALIZING_LOCAL,
            ProvisioningState.WIRING_REMOTES,
            ProvisioningState.BRANCH_PROPAGATION,
            ProvisioningState.DONE,
        ]
