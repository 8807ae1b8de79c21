"""
AllCalc Web Portal Launcher
Simple script to start the web server
"""
import sys
import os

# Add current directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import config


def main():
    print("Starting AllCalc Web Portal...")
    print()

    try:
        import api
    except ImportError as e:
        print(f"Error importing modules: {e}")
        print("\nMake sure you have installed the required dependencies:")
        print("  pip install -e .")
        sys.exit(1)

    if not api.llm_client.available:
        print("LLM_BASE_URL / LLM_MODEL not set: teacher mode and automatic")
        print("mode switching fall back to plain evaluation.")
        print()

    print("="*60)
    print(f"AllCalc is live on http://localhost:{config.WEB_PORT}")
    print("="*60)

    try:
        api.app.run(host=config.WEB_HOST, port=config.WEB_PORT, debug=False)
    except OSError as e:
        print(f"Error starting server: {e}")
        print("\nTroubleshooting:")
        print("1. Check if another application is using the port")
        print(f"2. Set ALLCALC_PORT to a free port (current: {config.WEB_PORT})")
        sys.exit(1)


if __name__ == "__main__":
    main()
