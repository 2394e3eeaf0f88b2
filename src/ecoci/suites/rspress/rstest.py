import os

from ecoci.suite import RunOptions, SuiteSpec, run_in_repo


def test(options: RunOptions) -> None:
    ctx = options.ctx
    run_in_repo(
        options,
        SuiteSpec.define(
            "web-infra-dev/rstest",
            branch=os.environ.get("RSTEST", "main"),
            before_test=lambda: ctx.cd("./website"),
            test=["build"],
        ),
    )
