"""Shared fakes for provisioning tests."""

import os
from collections import OrderedDict

import pytest

from error_handling import ErrorContext, GitError
from repo_provisioner import (
    PlatformCredential,
    ProvisionerConfig,
    RemoteRepoHandle,
    RepoProvisioner,
)


class FakeGit:
    """In-memory stand-in for LocalGitRepo that still creates .git on disk."""

    def __init__(self, working_dir, default_branch="master", fail_on=None):
        self.working_dir = str(working_dir)
        self.default_branch = default_branch
        self.fail_on = fail_on or {}
        self.calls = []
        self.remotes = OrderedDict()
        self.branches = []
        self.current = None
        self.pushes = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        rule = self.fail_on.get(name)
        if rule is not None and rule(*args):
            raise GitError(
                f"git {name} failed: remote: Permission to repo denied",
                ErrorContext(operation=f"git {name}"),
                stderr="git@github.com: Permission denied (publickey).",
            )

    def init(self):
        self._record("init")
        os.makedirs(os.path.join(self.working_dir, ".git"), exist_ok=True)
        self.current = self.default_branch

    def add(self, paths):
        self._record("add", list(paths))

    def commit(self, message):
        self._record("commit", message)
        self.branches.append(self.current)

    def current_branch(self):
        return self.current

    def rename_current_branch(self, name):
        self._record("rename_current_branch", name)
        self.branches = [name if b == self.current else b for b in self.branches]
        self.current = name

    def get_remotes(self):
        return [{"name": name, "url": url} for name, url in self.remotes.items()]

    def add_remote(self, name, url):
        self._record("add_remote", name, url)
        self.remotes[name] = url

    def remove_remote(self, name):
        self._record("remove_remote", name)
        del self.remotes[name]

    def push(self, remote, branch, set_upstream=False):
        self._record("push", remote, branch, set_upstream)
        self.pushes.append((remote, branch, set_upstream))

    def checkout_new_branch(self, name):
        self._record("checkout_new_branch", name)
        self.branches.append(name)
        self.current = name

    def checkout(self, name):
        self._record("checkout", name)
        self.current = name

    def call_names(self):
        return [call[0] for call in self.calls]


class FakeProvider:
    """Returns a preset handle or raises a preset error per platform."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.calls = []

    def create_remote_repo(self, platform, repo_name, visibility, description, credential,
                           on_name_conflict=None):
        self.calls.append((platform, repo_name, visibility, credential.token))
        outcome = self.outcomes[platform]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def fake_credentials(platform):
    return PlatformCredential(platform=platform, username=f"dev@{platform}.example", token=f"{platform}-token")


@pytest.fixture
def handles():
    return {
        "github": RemoteRepoHandle(platform="github", owner="octo", name="demo"),
        "gitee": RemoteRepoHandle(platform="gitee", owner="mayun", name="demo"),
    }


@pytest.fixture
def make_provisioner(tmp_path):
    def _make(git, provider, confirm=True, on_name_conflict=None, credential_resolver=fake_credentials):
        config = ProvisionerConfig(working_dir=str(tmp_path), show_progress=False)
        return RepoProvisioner(
            config,
            credential_resolver=credential_resolver,
            on_name_conflict=on_name_conflict,
            confirm_local_init=lambda: confirm,
            provider=provider,
            git=git,
        )
    return _make
