import sys

import pytest


def run_tests(extra_args=None):
    """Run the ledger test suite in-process; extra args go straight to pytest."""
    args = ['tests/', '-v'] + list(extra_args or [])
    print("Running zkledger test suite in-process...")
    try:
        # pytest.main returns an exit code. 0 for success.
        exit_code = pytest.main(args)
        return exit_code == 0
    except Exception as e:
        print(f"An error occurred while running tests: {e}")
        return False


if __name__ == '__main__':
    if run_tests(sys.argv[1:]):
        print("All tests passed.")
        sys.exit(0)
    else:
        print("One or more tests failed.")
        sys.exit(1)
