# Tests import the package as `src.vstensor`; having this file at the
# repository root puts the root on sys.path for pytest.
