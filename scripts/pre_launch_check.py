"""Release verification script for condforest."""

import subprocess
import sys
import tomllib


def check_version():
    """pyproject.toml and condforest.__version__ must agree."""
    print("Checking version...")
    import condforest

    with open("pyproject.toml", "rb") as f:
        project_version = tomllib.load(f)["project"]["version"]

    if condforest.__version__ != project_version:
        print(f"❌ Version mismatch: __init__.py={condforest.__version__}, "
              f"pyproject.toml={project_version}")
        return False

    print(f"✅ Version: {condforest.__version__}")
    return True


def check_exports():
    """Every name in __all__ must resolve."""
    print("\nChecking exports...")
    import condforest as cf

    missing = [name for name in cf.__all__ if not hasattr(cf, name)]
    if missing:
        print(f"❌ Missing: {missing}")
        return False

    print(f"✅ All {len(cf.__all__)} exports available")
    return True


def _run(name, cmd):
    print(f"\n{name}...")
    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        print(f"❌ {name} failed")
        print(result.stdout[-2000:])
        return False
    print(f"✅ {name} passed")
    return True


def main():
    print("=" * 60)
    print("CONDFOREST RELEASE CHECK")
    print("=" * 60)

    checks = [
        ("Version", check_version),
        ("Exports", check_exports),
        ("Tests", lambda: _run("Tests", ["uv", "run", "pytest", "tests/", "-q", "--tb=short"])),
        ("Package Build", lambda: _run("Package Build", ["uv", "build"])),
    ]

    results = {}
    for name, check_fn in checks:
        try:
            results[name] = check_fn()
        except (OSError, ImportError, KeyError) as e:
            print(f"❌ {name} failed with exception: {e}")
            results[name] = False

    print("\n" + "=" * 60)
    for name, passed in results.items():
        print(f"  {'✅' if passed else '❌'} {name}")
    print("=" * 60)

    return 0 if all(results.values()) else 1


if __name__ == "__main__":
    sys.exit(main())
