from ecoci.suite import RunOptions, SuiteSpec, run_in_repo


def test(options: RunOptions) -> None:
    run_in_repo(
        options,
        SuiteSpec.define(
            "rspack-contrib/rspack-examples",
            test=[
                "build:rspack",
                "test:rspack",
                "build:rsbuild",
                "build:rsdoctor",
                "build:rspress",
                "build:rslib",
            ],
        ),
    )
