import re
import sys

from invoke import run, task

version_file = "python_formreader/__init__.py"
version_regex = re.compile(r"((?:\d+)\.(?:\d+)\.(?:\d+))")


class g:
    test_success = False


@task
def test(ctx):
    test_cmd = [
        "pytest",  # Test command
        "--cov-report term-missing",  # Print only uncovered lines to stdout
        "--cov python_formreader",  # Test only this package
    ]

    # Test in this directory
    test_cmd.append("tests")

    res = run(" ".join(test_cmd), pty=False)
    g.test_success = res.ok


@task
def version(ctx):
    with open(version_file) as f:
        match = version_regex.search(f.read())
    print(match.group(1))


@task(pre=[test])
def deploy(ctx):
    if not g.test_success:
        print("Tests must pass before deploying!", file=sys.stderr)
        return

    run("python setup.py sdist bdist_wheel")
    run("twine upload dist/*")
