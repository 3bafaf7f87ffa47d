#!/usr/bin/env python3
"""
Example usage of the quickgit provisioner

This script demonstrates how to use the RepoProvisioner class programmatically
instead of using the command-line interface.
"""

import logging
import os
from repo_provisioner import (
    PlatformCredential,
    ProvisionerConfig,
    ProvisioningRequest,
    RepoProvisioner,
)


def credential_from_env(platform: str) -> PlatformCredential:
    """Read the token for a platform from GITHUB_TOKEN / GITEE_TOKEN."""
    prefix = platform.upper()
    return PlatformCredential(
        platform=platform,
        username=os.getenv(f"{prefix}_USERNAME", ""),
        token=os.getenv(f"{prefix}_TOKEN", ""),
    )


def main():
    """Example of programmatic usage."""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    request = ProvisioningRequest(
        repo_name="demo",
        platforms=["github", "gitee"],
        is_multi_repo=True,
        visibility="public",
        main_branch="main",
        need_dev_branch=True,
        develop_branch="develop",
    )

    provisioner = RepoProvisioner(
        ProvisionerConfig(working_dir=os.getcwd()),
        credential_resolver=credential_from_env,
        # Never rename on conflict: skip the platform instead
        on_name_conflict=lambda platform, name: None,
        confirm_local_init=lambda: True,
    )

    result = provisioner.provision(request)
    if result:
        print(f"Provisioning completed: {result.remotes}")
    else:
        print(f"Provisioning failed: {result.error}")


if __name__ == "__main__":
    main()
