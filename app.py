from labtracker import app

if __name__ == "__main__":
    print("Starting Lab Testing Tracker API...")
    print("Available endpoints:")
    print("   - GET    /health")
    print("   - GET    /api/v1/quotes")
    print("   - PATCH  /api/v1/quotes/<id>/status")
    print("   - DELETE /api/v1/quotes/<id>")
    print("   - GET    /api/v1/pipeline")
    print("   - GET    /api/v1/dashboard")
    print("   - GET    /api/v1/subscription")
    print("   - POST   /functions/track-usage")
    print("   - POST   /functions/list-users")
    app.run(host="0.0.0.0", port=5000, debug=True)
