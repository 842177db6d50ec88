from __future__ import annotations

import signal
import subprocess
import sys
import time

ENTRYPOINTS = ("run_local.py", "run_worker.py", "run_telegram_bot.py")


def _terminate(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()


def main() -> int:
    python = sys.executable
    procs = [subprocess.Popen([python, script]) for script in ENTRYPOINTS]

    try:
        while True:
            for proc in procs:
                code = proc.poll()
                if code is not None:
                    for other in procs:
                        _terminate(other)
                    return code
            time.sleep(0.5)
    except KeyboardInterrupt:
        for proc in procs:
            _terminate(proc)
        return 0


if __name__ == "__main__":
    signal.signal(signal.SIGINT, signal.default_int_handler)
    raise SystemExit(main())
