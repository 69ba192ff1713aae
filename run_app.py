import subprocess
import time
import sys
import os
import webbrowser

from config import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_WALLET_RPC_URL

# Configuration
PYTHON_EXEC = sys.executable
HOST = os.getenv("APP_HOST", DEFAULT_HOST)
PORT = int(os.getenv("APP_PORT", str(DEFAULT_PORT)))
WALLET_RPC_URL = os.getenv("WALLET_RPC_URL", DEFAULT_WALLET_RPC_URL)


def start_server():
    print(f"Starting voting session on {HOST}:{PORT} (wallet: {WALLET_RPC_URL})...")

    env = os.environ.copy()
    env["APP_HOST"] = HOST
    env["APP_PORT"] = str(PORT)
    env["WALLET_RPC_URL"] = WALLET_RPC_URL

    return subprocess.Popen(
        [PYTHON_EXEC, "-m", "uvicorn", "api.server:app", "--host", HOST, "--port", str(PORT)],
        env=env,
        cwd=os.getcwd()
    )


def open_browser():
    url = f"http://localhost:{PORT}/view"
    print(f"Opening {url}...")
    webbrowser.open(url)


def main():
    process = start_server()
    try:
        time.sleep(2)
        open_browser()

        print("\nVoting session is running! Press Ctrl+C to stop.\n")

        while process.poll() is None:
            time.sleep(1)

    except KeyboardInterrupt:
        print("\nShutting down...")
        process.terminate()
        print("Goodbye!")

if __name__ == "__main__":
    main()
