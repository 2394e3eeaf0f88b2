import os

from ecoci.suite import RunOptions, SuiteSpec, run_in_repo


def test(options: RunOptions) -> None:
    ctx = options.ctx
    run_in_repo(
        options,
        SuiteSpec.define(
            "web-infra-dev/rspack",
            branch=os.environ.get("RSPACK", "main"),
            before_test=lambda: ctx.cd("./website"),
            test=["pnpm run build"],
        ),
    )
