"""
Vuelve platform entry point.
"""
import os
import sys
import traceback

print("[Vuelve] Starting Vuelve loyalty engine")

# Default to production for container deployment
config_name = os.getenv('FLASK_ENV', 'production')
print(f"[Vuelve] Config: {config_name}")
print(f"[Vuelve] PORT: {os.getenv('PORT', 'not set')}")
print(f"[Vuelve] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")

try:
    from app import create_app
    app = create_app(config_name)
    print(f"[Vuelve] App created, routes: {len(list(app.url_map.iter_rules()))}")
except Exception as e:
    print(f"[Vuelve] FATAL ERROR during app creation: {e}")
    traceback.print_exc()
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
