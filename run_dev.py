#!/usr/bin/env python3
"""Development server runner for the PrisonRP rules site."""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv


def setup_environment():
    """Load .env from the project root and set Flask defaults."""
    project_root = Path(__file__).parent
    env_file = project_root / '.env'
    if env_file.exists():
        load_dotenv(env_file)
        print(f"✓ Loaded environment from {env_file}")
    else:
        print(f"⚠️ No .env file found at {env_file}, using defaults")

    os.environ.setdefault('FLASK_APP', 'prisonrp:create_app')
    os.environ.setdefault('FLASK_DEBUG', '1')


def run_development_server():
    """Create the app (connecting, migrating and seeding storage) and serve it."""
    from prisonrp import create_app

    app = create_app()
    port = int(os.environ.get('PORT', '3001'))

    print("\n" + "=" * 60)
    print("🚀 Starting PrisonRP rules API")
    print("=" * 60)
    print(f"Environment: {app.config['APP_ENV']}")
    print(f"Database: {app.extensions['prisonrp_storage'].backend_name}")
    print(f"\n📱 API available at http://localhost:{port}/api")
    print("\n🛠️ To create a staff account, run in another terminal:")
    print("   flask staff add --username Warden --level owner --steam-id 76561198000000042")
    print("   flask seed sample-rules")
    print("\n⏹️ Press Ctrl+C to stop the server")
    print("=" * 60)

    app.run(host='0.0.0.0', port=port, debug=True, use_reloader=True)


def main():
    print("PrisonRP Rules - Development Setup")
    print("=" * 60)
    setup_environment()
    try:
        run_development_server()
    except KeyboardInterrupt:
        print("\n\n🛑 Development server stopped by user")
    except Exception as e:
        # Storage connection failures surface here and stop the process
        print(f"\n❌ Failed to start development server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
