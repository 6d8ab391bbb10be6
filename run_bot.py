"""
Run Discord Bot - Direct launch script
"""
import sys
import logging
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()

from config.settings import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

print("=" * 60)
print("  🤖 Sage FAQ Bot - Starting...")
print("=" * 60)

from sage.discord_bot import create_bot

print(f"""
Store backend: {settings.store.provider}

Bot Commands:
  /ask <question>        - Search the FAQ
  /help                  - Show help information
  /status                - Show bot status
  /faqstats [timeframe]  - FAQ usage statistics
  /autoresponse channel  - Toggle auto-responses in a channel
  /listautoresponses     - List channels with auto-responses disabled
  /botresponses [user]   - Review recent bot replies

Questions asked in any channel are answered automatically.

Press Ctrl+C to stop the bot.
""")

# Create and run bot
bot = create_bot()
token = os.getenv("DISCORD_BOT_TOKEN")

if not token:
    print("❌ DISCORD_BOT_TOKEN not set in .env!")
    sys.exit(1)

# Remove quotes if present
token = token.strip('"').strip("'")

bot.run_bot(token)
