from ecoci.suite import RunOptions, SuiteSpec, run_in_repo


def test(options: RunOptions) -> None:
    run_in_repo(options, SuiteSpec.define("web-infra-dev/rspack-dev-server", test=["test"]))
