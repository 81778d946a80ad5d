#!/usr/bin/env python3
"""
Test runner for the Buddy companion.

This script runs all the unit tests in the tests/unit directory.
"""

import unittest
import sys
import os
import importlib.util
from pathlib import Path

def load_test_modules():
    """Discover and load all test modules in tests/unit directory."""
    test_dir = Path(__file__).parent / 'unit'
    test_modules = []

    for file in sorted(test_dir.glob('test_*.py')):
        module_name = file.stem
        spec = importlib.util.spec_from_file_location(module_name, file)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        test_modules.append(module)

    return test_modules

def run_tests(test_modules, verbosity=2):
    """Run every TestCase in the modules; async cases run on their own loop."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    for module in test_modules:
        suite.addTests(loader.loadTestsFromModule(module))

    runner = unittest.TextTestRunner(verbosity=verbosity)
    return runner.run(suite)

def main():
    # Project root for the buddy package, unit dir for the shared fakes
    root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    unit_dir = os.path.join(root_dir, 'tests', 'unit')
    for path in (root_dir, unit_dir):
        if path not in sys.path:
            sys.path.insert(0, path)

    test_modules = load_test_modules()
    print(f"Found {len(test_modules)} test modules")

    result = run_tests(test_modules)
    return 0 if result.wasSuccessful() else 1

if __name__ == "__main__":
    sys.exit(main())
