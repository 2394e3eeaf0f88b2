"""lynx-stack is cloned into a throwaway directory outside the shared workspace."""

import os
import tempfile
from pathlib import Path

from ecoci.suite import RunOptions, SuiteSpec, run_in_repo


def test(options: RunOptions) -> None:
    tmp = Path(tempfile.mkdtemp(prefix="lynx-stack-"))
    run_in_repo(
        options,
        SuiteSpec.define(
            "lynx-family/lynx-stack",
            branch=os.environ.get("LYNX_STACK_REF", "main"),
            workspace=tmp,
            before_build="rustup target add wasm32-unknown-unknown",
            # TODO: run the Lynx for Web tests once they pass against rspack main
            build="pnpm turbo build",
            test="pnpm run test --silent",
        ),
    )
