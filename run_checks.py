import subprocess
import sys


def run_command(command, output_file):
    print(f"Running: {' '.join(command)}")
    try:
        with open(output_file, "w") as f:
            result = subprocess.run(
                command,
                stdout=f,
                stderr=subprocess.STDOUT,
                text=True
            )
        print(f"Finished: {' '.join(command)} (Exit Code: {result.returncode})")
        return result.returncode
    except OSError as e:
        print(f"Error running {' '.join(command)}: {e}")
        return 1


def main():
    print("Starting pydenylist checks...")

    # 'uv run' resolves the project's environment, including the dev extra
    commands = [
        (["uv", "run", "ruff", "check", "src", "tests", "scripts"], "ruff_output.txt"),
        (["uv", "run", "mypy", "src/pydenylist"], "mypy_output.txt"),
        (["uv", "run", "python", "scripts/update_version.py", "--check"], "version_output.txt"),
        (["uv", "run", "pytest", "-v"], "test_output.txt"),
    ]

    failed = [" ".join(cmd) for cmd, out in commands if run_command(cmd, out) != 0]

    print("\nChecks completed.")
    if failed:
        print("Failed: " + ", ".join(failed))
        print("See the *_output.txt files for details.")
        sys.exit(1)
    print("All checks passed!")
    sys.exit(0)


if __name__ == "__main__":
    main()
