import os

from ecoci.suite import RunOptions, SuiteSpec, run_in_repo


def test(options: RunOptions) -> None:
    ctx = options.ctx

    def install_browsers() -> None:
        ctx.cd("./e2e")
        ctx.sh("pnpm playwright install --with-deps")
        ctx.cd("..")

    run_in_repo(
        options,
        SuiteSpec.define(
            "web-infra-dev/rsdoctor",
            branch=os.environ.get("RSDOCTOR", "main"),
            before_test=install_browsers,
            test=["test:all"],
        ),
    )
