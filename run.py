"""Local development entry point.

Usage:
    python run.py

Forward Stripe test events to the local server with:
    stripe listen --forward-to localhost:5001/stripe/webhooks
and put the printed whsec_... into STRIPE_WEBHOOK_SECRET in .env.
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from dogshift import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
