"""
Discord Bot Module

Connects the FAQ pipeline to Discord.

Features:
- Auto-answers questions posted in text channels from the FAQ corpus
- Rate limits question floods (message deleted, user notified by DM)
- Per-user cooldown between FAQ answers
- Thumbs up / thumbs down feedback on every answer
- Slash commands for asking, help, status, usage stats and channel toggles
- Admin commands to review the reply log and the disabled channels

Design Rationale:
- Uses discord.py for Discord API integration
- Discord objects stop at this module; the pipeline only sees
  IncomingMessage records
- Every Discord API failure is logged and swallowed so one message can
  never take down the event loop

Usage:
    python run_bot.py

    Or:
    from sage.discord_bot import DiscordBot
    bot = DiscordBot()
    bot.run_bot()
"""

import asyncio
import logging
import os
import time
from datetime import datetime, timedelta
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from config.settings import get_settings
from sage.channel_settings import AutoResponseSettings
from sage.document_store import DocumentStore
from sage.errors import StoreError
from sage.faq_store import load_faq_file
from sage.models import FAQEntry, IncomingMessage, MatchOutcome, MatchResult
from sage.pipeline import FAQPipeline
from sage.response_logger import BotResponseLogger

# Configure logging
logger = logging.getLogger(__name__)

TIMEFRAMES = {
    "today": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}

STORE_NAMES = {
    "memory": "Memory (not persisted)",
    "mongodb": "MongoDB",
}


class DiscordBot(commands.Bot):
    """
    Discord Bot with FAQ auto-answering.

    Features:
    - FAQ auto-matching on every message
    - Rate limiting and cooldowns
    - Reaction feedback
    - Slash commands
    """

    def __init__(
        self,
        command_prefix: str = "!",
        pipeline: Optional[FAQPipeline] = None,
        store: Optional[DocumentStore] = None,
        **kwargs
    ):
        """
        Initialize the Discord Bot.

        Args:
            command_prefix: Prefix for text commands (default: "!")
            pipeline: Optional pre-configured FAQ pipeline
            store: Optional document store (default from settings)
            **kwargs: Additional arguments for commands.Bot
        """
        # MESSAGE_CONTENT is required to read message content (must be enabled in Developer Portal)
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.reactions = True

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            **kwargs
        )

        # Settings
        self.settings = get_settings()

        self._store = store
        self._pipeline = pipeline
        self._response_logger: Optional[BotResponseLogger] = None
        self._is_ready = False
        self._feedback_tasks = set()

        # Statistics
        self._stats = {
            "questions_answered": 0,
            "rate_limited": 0,
            "errors": 0,
            "start_time": None,
        }

        logger.info("DiscordBot initialized")

    @property
    def store(self) -> DocumentStore:
        """Get the document store, creating it if needed."""
        if self._store is None:
            self._store = DocumentStore(config=self.settings.store)
        return self._store

    @property
    def pipeline(self) -> FAQPipeline:
        """Get the FAQ pipeline, initializing if needed."""
        if self._pipeline is None:
            logger.info("Initializing FAQ pipeline...")
            self._pipeline = FAQPipeline.from_settings(self.store, self.settings)
        return self._pipeline

    @property
    def response_logger(self) -> BotResponseLogger:
        if self._response_logger is None:
            self._response_logger = BotResponseLogger(
                self.pipeline.faq_store.store,
                self.settings.store.responses_collection,
            )
        return self._response_logger

    @property
    def channel_settings(self) -> AutoResponseSettings:
        if self.pipeline.channel_settings is None:
            self.pipeline.channel_settings = AutoResponseSettings(
                self.pipeline.faq_store.store, self.settings.store.client_data_collection
            )
        return self.pipeline.channel_settings

    async def setup_hook(self):
        """Called when the bot is starting up."""
        await self._prepare_store()
        await self._register_commands()
        logger.info("Slash commands registered")

    async def _prepare_store(self):
        """Warn about the volatile memory store and load its FAQ seed file."""
        config = self.settings.store
        if config.provider != "memory":
            return

        logger.warning(
            "STORE_PROVIDER=memory: FAQs, cooldowns, usage statistics and the "
            "response log are lost on restart. Use STORE_PROVIDER=mongodb in production."
        )

        if not config.faq_seed_file:
            logger.warning("No FAQ_SEED_FILE set; the FAQ corpus is empty")
            return

        try:
            documents = load_faq_file(config.faq_seed_file)
            await self.pipeline.faq_store.seed(documents)
        except (OSError, ValueError, StoreError) as e:
            logger.error(f"Failed to seed FAQs from {config.faq_seed_file}: {e}")

    async def _register_commands(self):
        """Register slash commands with Discord."""

        @self.tree.command(name="ask", description="Search the FAQ for an answer")
        @app_commands.describe(question="Your question")
        async def ask_command(interaction: discord.Interaction, question: str):
            await self._handle_question(interaction, question)

        @self.tree.command(name="help", description="Get help using the FAQ bot")
        async def help_command(interaction: discord.Interaction):
            await self._send_help(interaction)

        @self.tree.command(name="status", description="Check bot status and statistics")
        async def status_command(interaction: discord.Interaction):
            await self._send_status(interaction)

        @self.tree.command(name="faqstats", description="View FAQ usage statistics")
        @app_commands.describe(timeframe="Timeframe to view statistics for")
        @app_commands.choices(timeframe=[
            app_commands.Choice(name="Today", value="today"),
            app_commands.Choice(name="Past Week", value="week"),
            app_commands.Choice(name="Past Month", value="month"),
            app_commands.Choice(name="All Time", value="all"),
        ])
        @app_commands.default_permissions(manage_guild=True)
        async def faqstats_command(interaction: discord.Interaction, timeframe: str = "all"):
            await self._send_faq_stats(interaction, timeframe)

        @self.tree.command(name="autoresponse", description="Toggle FAQ auto-responses in a channel")
        @app_commands.describe(channel="The channel to toggle auto-responses in")
        @app_commands.default_permissions(manage_guild=True)
        async def autoresponse_command(interaction: discord.Interaction, channel: discord.TextChannel):
            await self._toggle_auto_response(interaction, channel)

        @self.tree.command(name="listautoresponses", description="List channels with auto-responses disabled")
        @app_commands.default_permissions(manage_guild=True)
        async def listautoresponses_command(interaction: discord.Interaction):
            await self._list_auto_responses(interaction)

        @self.tree.command(name="botresponses", description="Review recent bot replies")
        @app_commands.describe(user="Only replies to this user", limit="Number of replies to show (max 25)")
        @app_commands.default_permissions(manage_guild=True)
        async def botresponses_command(
            interaction: discord.Interaction,
            user: Optional[discord.User] = None,
            limit: app_commands.Range[int, 1, 25] = 10,
        ):
            await self._send_bot_responses(interaction, user, limit)

        # Sync commands with Discord
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync commands: {e}")

    async def on_ready(self):
        """Called when the bot is ready and connected."""
        self._is_ready = True
        self._stats["start_time"] = datetime.now()

        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

        activity = discord.Activity(
            type=discord.ActivityType.listening,
            name="your questions | /ask"
        )
        await self.change_presence(activity=activity)

    async def close(self):
        await super().close()
        if self._store is not None:
            await self._store.close()

    async def on_message(self, message: discord.Message):
        """Handle incoming messages."""
        # Ignore messages from the bot itself and from other bots
        if message.author == self.user or message.author.bot:
            return

        if message.content and not message.content.startswith(self.command_prefix):
            incoming = IncomingMessage(
                text=message.content,
                user_id=str(message.author.id),
                user_name=message.author.name,
                now=time.time(),
                channel_id=str(message.channel.id),
                guild_id=str(message.guild.id) if message.guild else None,
            )
            result = await self.pipeline.process(incoming)
            await self._handle_result(message, result)

        # Process text commands (if any)
        await self.process_commands(message)

    async def _handle_result(self, message: discord.Message, result: MatchResult):
        """Render a pipeline outcome into Discord actions."""
        try:
            if result.outcome is MatchOutcome.RATE_LIMITED:
                await self._handle_rate_limited(message, result)
            elif result.outcome is MatchOutcome.COOLDOWN:
                await message.reply(
                    f"You're asking too quickly! Please wait {result.cooldown_remaining} "
                    f"seconds before asking another question."
                )
            elif result.outcome is MatchOutcome.MATCHED:
                await self._send_faq_answer(message, result.matched_faq)
        except discord.HTTPException as e:
            logger.error(f"Error replying to message {message.id}: {e}")
            self._stats["errors"] += 1

    async def _handle_rate_limited(self, message: discord.Message, result: MatchResult):
        """Delete the offending message and, if due, tell the user privately."""
        self._stats["rate_limited"] += 1

        try:
            await message.delete()
        except discord.HTTPException as e:
            logger.warning(f"Could not delete rate limited message {message.id}: {e}")

        if not result.should_warn:
            return

        wait = int(result.retry_after or 0) + 1
        try:
            await message.author.send(
                f"You're sending questions too quickly. Your message was removed; "
                f"please wait {wait} seconds before asking again."
            )
        except discord.HTTPException as e:
            # Users with closed DMs raise Forbidden
            logger.info(f"Could not DM rate limit notice to {message.author.id}: {e}")

    async def _send_faq_answer(self, message: discord.Message, faq: FAQEntry):
        """Reply with an FAQ embed and start listening for feedback."""
        feedback = self.settings.feedback
        embed = self._format_faq_embed(faq)

        reply = await message.reply(
            content=f"{message.author.mention}, here is the answer to your question:",
            embed=embed,
        )
        self._stats["questions_answered"] += 1

        await self.response_logger.log_response(
            user_id=str(message.author.id),
            user_name=message.author.name,
            question=message.content,
            response=faq.answer,
            channel_id=str(message.channel.id),
            guild_id=str(message.guild.id) if message.guild else None,
            response_type="faq",
            metadata={"faqId": faq.faq_id, "question": faq.question},
        )

        await reply.add_reaction(feedback.positive_emoji)
        await reply.add_reaction(feedback.negative_emoji)

        task = asyncio.create_task(self._collect_feedback(message, reply, faq))
        self._feedback_tasks.add(task)
        task.add_done_callback(self._feedback_tasks.discard)

    async def _collect_feedback(
        self,
        message: discord.Message,
        reply: discord.Message,
        faq: FAQEntry,
    ):
        """Wait for the asker's reaction on the reply and record it."""
        feedback = self.settings.feedback
        emojis = {
            feedback.positive_emoji: "positive",
            feedback.negative_emoji: "negative",
        }

        def check(reaction: discord.Reaction, user: discord.User) -> bool:
            return (
                reaction.message.id == reply.id
                and user.id == message.author.id
                and str(reaction.emoji) in emojis
            )

        try:
            reaction, _ = await self.wait_for(
                "reaction_add", check=check, timeout=feedback.window_seconds
            )
        except asyncio.TimeoutError:
            return

        sentiment = emojis[str(reaction.emoji)]
        await self.pipeline.record_feedback(faq.faq_id, sentiment)

        try:
            if sentiment == "positive":
                await message.reply("Great! Glad you found it helpful!")
            else:
                await message.reply(
                    "Sorry that you didn't find it helpful. "
                    "We will keep improving the answers."
                )
            await reply.clear_reactions()
        except discord.HTTPException as e:
            logger.warning(f"Error finishing feedback for reply {reply.id}: {e}")

    def _format_faq_embed(self, faq: FAQEntry) -> discord.Embed:
        """Format an FAQ entry as a Discord embed."""
        embed = discord.Embed(
            title=faq.question[:256],
            description=faq.answer[:4000],  # Discord limit is 4096
            color=discord.Color.green(),
            timestamp=datetime.now()
        )

        if faq.link:
            embed.add_field(name="For more details", value=faq.link[:1000], inline=False)

        feedback = self.settings.feedback
        embed.add_field(
            name="Did you find this response helpful?",
            value=f"{feedback.positive_emoji} Yes | {feedback.negative_emoji} No",
            inline=False
        )
        embed.set_footer(text=f"Category: {faq.category}")

        return embed

    async def _handle_question(self, interaction: discord.Interaction, question: str):
        """Handle a question from the /ask slash command."""
        result = await self.pipeline.lookup(question)

        if result.matched:
            embed = self._format_faq_embed(result.matched_faq)
            await interaction.response.send_message(embed=embed)
            return

        if result.related:
            lines = "\n".join(f"• {faq.question}" for faq in result.related)
            await interaction.response.send_message(
                f"I couldn't find an exact answer. Related questions:\n{lines}",
                ephemeral=True
            )
        else:
            await interaction.response.send_message(
                "I couldn't find an FAQ matching your question.",
                ephemeral=True
            )

    async def _send_help(self, interaction: discord.Interaction):
        """Send help information."""
        embed = discord.Embed(
            title="🤖 Sage FAQ Bot - Help",
            description="I answer common questions automatically from the server FAQ.",
            color=discord.Color.blue()
        )

        embed.add_field(
            name="💬 How to Ask Questions",
            value=(
                "**Option 1:** Just ask in a channel\n"
                "**Option 2:** Use the `/ask` command"
            ),
            inline=False
        )

        embed.add_field(
            name="⚡ Commands",
            value=(
                "`/ask` - Search the FAQ\n"
                "`/help` - Show this help message\n"
                "`/status` - Bot status and stats\n"
                "`/faqstats` - FAQ usage statistics\n"
                "`/autoresponse` - Toggle auto-responses in a channel\n"
                "`/listautoresponses` - Channels with auto-responses off\n"
                "`/botresponses` - Review recent bot replies"
            ),
            inline=False
        )

        embed.add_field(
            name="💡 Tips",
            value=(
                "• Include course codes like CS101 to get the right answer\n"
                "• React with 👍 or 👎 to rate an answer"
            ),
            inline=False
        )

        await interaction.response.send_message(embed=embed)

    async def _send_status(self, interaction: discord.Interaction):
        """Send bot status information."""
        uptime = "N/A"
        if self._stats["start_time"]:
            delta = datetime.now() - self._stats["start_time"]
            hours, remainder = divmod(int(delta.total_seconds()), 3600)
            minutes, seconds = divmod(remainder, 60)
            uptime = f"{hours}h {minutes}m {seconds}s"

        embed = discord.Embed(
            title="📊 Bot Status",
            color=discord.Color.green() if self._is_ready else discord.Color.red()
        )

        embed.add_field(name="🟢 Status", value="Online" if self._is_ready else "Initializing...", inline=True)
        embed.add_field(name="⏱️ Uptime", value=uptime, inline=True)
        embed.add_field(name="🏠 Servers", value=str(len(self.guilds)), inline=True)
        embed.add_field(name="❓ Questions Answered", value=str(self._stats["questions_answered"]), inline=True)
        embed.add_field(name="⛔ Rate Limited", value=str(self._stats["rate_limited"]), inline=True)
        embed.add_field(name="💾 Store", value=STORE_NAMES.get(self.settings.store.provider, self.settings.store.provider), inline=True)

        embed.set_footer(text=f"Latency: {round(self.latency * 1000)}ms")

        await interaction.response.send_message(embed=embed)

    async def _send_faq_stats(self, interaction: discord.Interaction, timeframe: str = "all"):
        """Send the most used FAQs for a timeframe."""
        since = None
        if timeframe in TIMEFRAMES:
            since = (datetime.now() - TIMEFRAMES[timeframe]).timestamp()

        summaries = await self.pipeline.usage_tracker.get_stats(since=since, limit=10)
        if not summaries:
            await interaction.response.send_message(
                "No FAQ usage statistics found for the selected criteria.",
                ephemeral=True
            )
            return

        embed = discord.Embed(
            title="📈 FAQ Usage Statistics",
            description=f"Timeframe: {timeframe}",
            color=discord.Color.blue()
        )
        for summary in summaries:
            value = f"Used {summary.usage_count} times"
            if summary.total_feedback:
                value += f"\n👍 {summary.positive} | 👎 {summary.negative}"
            embed.add_field(name=summary.question[:256], value=value, inline=False)

        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def _toggle_auto_response(self, interaction: discord.Interaction, channel: discord.TextChannel):
        """Enable or disable auto-responses in a channel."""
        try:
            enabled = await self.channel_settings.toggle(str(channel.id))
        except StoreError as e:
            logger.error(f"Error toggling auto-responses: {e}")
            await interaction.response.send_message(
                "❌ Failed to update auto-response settings.",
                ephemeral=True
            )
            return

        state = "ENABLED" if enabled else "DISABLED"
        await interaction.response.send_message(f"Auto-responses {state} in #{channel.name}")

    async def _list_auto_responses(self, interaction: discord.Interaction):
        """List the channels where auto-responses are turned off."""
        try:
            disabled = await self.channel_settings.disabled_channels()
        except StoreError as e:
            logger.error(f"Error reading auto-response settings: {e}")
            await interaction.response.send_message(
                "❌ Failed to read auto-response settings.",
                ephemeral=True
            )
            return

        if not disabled:
            await interaction.response.send_message(
                "Auto-responses are enabled in all channels.",
                ephemeral=True
            )
            return

        embed = discord.Embed(
            title="Channels with Disabled Auto-Responses",
            description="\n".join(f"<#{channel_id}>" for channel_id in disabled)[:4000],
            color=discord.Color.orange()
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def _send_bot_responses(
        self,
        interaction: discord.Interaction,
        user: Optional[discord.User] = None,
        limit: int = 10,
    ):
        """Show the most recent logged replies in this server."""
        guild_id = str(interaction.guild_id) if interaction.guild_id else None
        entries = await self.response_logger.recent(
            limit=max(1, min(limit, 25)),  # Discord allows 25 embed fields
            guild_id=guild_id,
            user_id=str(user.id) if user else None,
        )

        if not entries:
            await interaction.response.send_message("No bot responses found.", ephemeral=True)
            return

        embed = discord.Embed(
            title="🗒️ Recent Bot Responses",
            color=discord.Color.blue()
        )
        for entry in entries:
            when = int(entry.get("timestamp") or 0)
            embed.add_field(
                name=f"{entry.get('userName')}: {entry.get('questionContent', '')}"[:256],
                value=f"{entry.get('responseContent', '')[:900]}\n<t:{when}:R>",
                inline=False
            )

        await interaction.response.send_message(embed=embed, ephemeral=True)

    def run_bot(self, token: Optional[str] = None):
        """
        Run the bot with the given token.

        Args:
            token: Discord bot token (or from environment)
        """
        token = token or os.getenv("DISCORD_BOT_TOKEN")

        if not token:
            raise ValueError(
                "Discord bot token not provided. "
                "Set DISCORD_BOT_TOKEN environment variable or pass token directly."
            )

        logger.info("Starting Discord bot...")
        self.run(token)


def create_bot(**kwargs) -> DiscordBot:
    """
    Factory function to create a configured Discord bot.

    Args:
        **kwargs: Arguments to pass to DiscordBot

    Returns:
        Configured DiscordBot instance
    """
    return DiscordBot(**kwargs)
