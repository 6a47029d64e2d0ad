import discord
from discord.ext import commands
import logging
import os
from typing import Optional

from .config_manager import ConfigManager
from .models import Page, QuizSnapshot
from .question_bank import QuestionBankClient, TokenAcquisitionError
from .quiz_controller import CORRECT_FEEDBACK, InvalidTransitionError, NoQuestionsError, QuizController

logger = logging.getLogger(__name__)

COLOR_INFO = 0x3498db
COLOR_SUCCESS = 0x00ff00
COLOR_WARNING = 0xffaa00
COLOR_ERROR = 0xff0000


def build_snapshot_embed(snapshot: QuizSnapshot) -> discord.Embed:
    """Render a quiz snapshot as a Discord embed, one layout per page."""
    progress = snapshot.progress

    if snapshot.page is Page.INTRO:
        embed = discord.Embed(
            title="🎯 Trivia Quiz",
            description="Test your knowledge! Use `/trivia` to start a new quiz.",
            color=COLOR_INFO
        )
        if not snapshot.can_start:
            embed.add_field(
                name="⏳ Please wait",
                value="Still requesting a session token from the question bank.",
                inline=False
            )
        return embed

    if snapshot.page is Page.QUESTION:
        question = snapshot.current_question
        answers = "\n".join(
            f"**{number}.** {answer}" for number, answer in enumerate(question.answers, start=1)
        )
        embed = discord.Embed(
            title=f"❓ Question {progress['current']} of {progress['total']}",
            description=question.text,
            color=COLOR_INFO
        )
        embed.add_field(name="Answers", value=answers, inline=False)
        embed.set_footer(text=f"Score: {snapshot.score} | Reply with /answer <number>")
        return embed

    if snapshot.page is Page.ANSWER:
        correct = snapshot.feedback == CORRECT_FEEDBACK
        embed = discord.Embed(
            title="✅ Correct" if correct else "❌ Incorrect",
            description=snapshot.feedback,
            color=COLOR_SUCCESS if correct else COLOR_ERROR
        )
        embed.set_footer(
            text=f"Score: {snapshot.score} | Question {progress['current']} of {progress['total']} | /next to continue"
        )
        return embed

    embed = discord.Embed(
        title="🏁 Quiz Complete!",
        description=f"You scored **{snapshot.score}** out of **{progress['total']}**.",
        color=COLOR_SUCCESS
    )
    embed.set_footer(text="Use /trivia to play again")
    return embed


class TriviaBot(commands.Bot):
    """Discord bot rendering a single trivia quiz session"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager = ConfigManager()
        self.question_bank: Optional[QuestionBankClient] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            if self.app_config:
                self.apply_configuration()

            self.question_bank = QuestionBankClient(
                base_url=self.config_manager.get_base_url(),
                timeout=self.config_manager.get_request_timeout()
            )
            self.quiz_controller = QuizController(
                self.question_bank,
                settings=self.config_manager.get_quiz_settings()
            )

            await self.setup_commands()
            await self.acquire_session_token()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def apply_configuration(self) -> bool:
        """
        Apply the config file to the settings manager.

        Falls back to the default settings when the merged result is not valid.
        """
        for error in self.config_manager.apply_config(self.app_config):
            logger.warning(f"Config entry ignored: {error}")

        validation = self.config_manager.validate_settings()
        if not validation['valid']:
            for issue in validation['issues']:
                logger.error(f"Configuration issue: {issue}")
            self.config_manager.reset_to_defaults()
            return False

        return True

    async def acquire_session_token(self) -> bool:
        """Request the session token, without blocking quiz play on failure"""
        try:
            await self.quiz_controller.acquire_token()
            return True
        except TokenAcquisitionError as e:
            logger.warning(f"Continuing without a session token: {e}")
            return False

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="trivia", description="Start a new trivia quiz")
        async def trivia_command(interaction: discord.Interaction, count: Optional[int] = None):
            await self.handle_start(interaction, count)

        @self.tree.command(name="answer", description="Answer the current question by its number")
        async def answer_command(interaction: discord.Interaction, choice: int):
            await self.handle_answer(interaction, choice)

        @self.tree.command(name="next", description="Continue to the next question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_next(interaction)

        @self.tree.command(name="status", description="Show current quiz status and score")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="set_questions", description="Set the number of questions for the next quiz (1-50)")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_set_questions(interaction, number)

        @self.tree.command(name="set_difficulty", description="Set difficulty for the next quiz (easy, medium, hard or any)")
        async def set_difficulty_command(interaction: discord.Interaction, level: str):
            await self.handle_set_difficulty(interaction, level)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.question_bank is not None:
            await self.question_bank.aclose()
        await super().close()

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        help_embed = discord.Embed(
            title="🎯 Trivia Bot Commands",
            description="Commands for playing a trivia quiz",
            color=COLOR_SUCCESS
        )
        help_embed.add_field(
            name="🎮 Quiz Commands",
            value=(
                "`/trivia [count]` - Start a new quiz\n"
                "`/answer <number>` - Answer the current question\n"
                "`/next` - Continue to the next question\n"
                "`/status` - Show current progress and score"
            ),
            inline=False
        )
        help_embed.add_field(
            name="📋 Settings",
            value=(
                "`/set_questions <number>` - Questions per quiz\n"
                "`/set_difficulty <level>` - easy, medium, hard or any"
            ),
            inline=False
        )
        help_embed.add_field(
            name="⚙️ Current Settings",
            value=f"```\n{self.config_manager.get_settings_summary()}\n```",
            inline=False
        )
        await self.send_embed(interaction, help_embed)

    async def handle_start(self, interaction: discord.Interaction, count: Optional[int] = None):
        """Handle /trivia command"""
        if count is not None:
            result = self.config_manager.validate_question_count(count)
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Invalid Count")
                return

        # A failed startup token request is retried once per /trivia
        if not self.quiz_controller.can_start() and not await self.acquire_session_token():
            await self.send_warning_response(
                interaction,
                "The question bank session is not ready yet. Please try again in a moment."
            )
            return

        await interaction.response.defer(thinking=True)

        try:
            applied = await self.quiz_controller.start(count)
        except ValueError as e:
            await self.send_error_response(interaction, str(e), "❌ Invalid Count")
            return
        except NoQuestionsError as e:
            await self.send_error_response(interaction, f"Could not load questions: {e}", "❌ Quiz Start Failed")
            return
        except InvalidTransitionError:
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Quiz Start Error")
            return

        if not applied:
            await self.send_info_response(interaction, "A newer quiz was started instead.")
            return

        await self.send_embed(interaction, build_snapshot_embed(self.quiz_controller.snapshot()))

    async def handle_answer(self, interaction: discord.Interaction, choice: int):
        """Handle /answer command"""
        snapshot = self.quiz_controller.snapshot()
        question = snapshot.current_question
        if snapshot.page is not Page.QUESTION or question is None:
            await self.send_warning_response(interaction, "There is no question waiting for an answer.")
            return

        if not 1 <= choice <= len(question.answers):
            await self.send_error_response(
                interaction,
                f"Pick a number between 1 and {len(question.answers)}.",
                "❌ Invalid Choice"
            )
            return

        try:
            snapshot = self.quiz_controller.submit_answer(question.answers[choice - 1])
        except InvalidTransitionError:
            await self.send_error_response(interaction, "Failed to record your answer", "❌ Answer Error")
            return

        await self.send_embed(interaction, build_snapshot_embed(snapshot))

    async def handle_next(self, interaction: discord.Interaction):
        """Handle /next command"""
        if self.quiz_controller.page is not Page.ANSWER:
            await self.send_warning_response(interaction, "Answer the current question first.")
            return

        try:
            snapshot = self.quiz_controller.advance()
        except InvalidTransitionError:
            await self.send_error_response(interaction, "Failed to move to the next question", "❌ Quiz Error")
            return

        await self.send_embed(interaction, build_snapshot_embed(snapshot))

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        snapshot = self.quiz_controller.snapshot()
        if snapshot.is_loading:
            await self.send_info_response(interaction, "Loading questions...", "⏳ Please wait")
            return

        filters = ", ".join(f"{key}={value}" for key, value in self.config_manager.get_filters().items())
        embed = build_snapshot_embed(snapshot)
        embed.add_field(
            name="📊 Status",
            value=(
                f"Page: {snapshot.page.value}\n"
                f"Score: {snapshot.score}\n"
                f"Answered: {len(snapshot.user_answers)}/{snapshot.progress['total']}\n"
                f"Session token: {'yes' if snapshot.has_token else 'no'}\n"
                f"Next quiz filters: {filters}"
            ),
            inline=False
        )
        await self.send_embed(interaction, embed)

    async def handle_set_questions(self, interaction: discord.Interaction, number: int):
        """Handle /set_questions command"""
        result = self.config_manager.set_question_count(number)
        await self._report_setting(interaction, result)

    async def handle_set_difficulty(self, interaction: discord.Interaction, level: str):
        """Handle /set_difficulty command"""
        level = level.strip().lower()
        result = self.config_manager.set_difficulty(None if level == "any" else level)
        await self._report_setting(interaction, result)

    async def _report_setting(self, interaction: discord.Interaction, result: dict):
        if result['success']:
            self.quiz_controller.settings = self.config_manager.get_quiz_settings()
            await self.send_info_response(interaction, result['user_message'], "⚙️ Settings Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")

    async def send_embed(self, interaction: discord.Interaction, embed: discord.Embed, ephemeral: bool = False):
        """Send an embed, falling back to plain text if Discord rejects it"""
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=ephemeral)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=ephemeral)
        except discord.HTTPException as e:
            logger.error(f"Failed to send embed: {e}")
            try:
                simple_message = f"{embed.title}: {embed.description}"
                if interaction.response.is_done():
                    await interaction.followup.send(simple_message, ephemeral=ephemeral)
                else:
                    await interaction.response.send_message(simple_message, ephemeral=ephemeral)
            except discord.HTTPException:
                logger.error("Failed to send fallback message")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        embed = discord.Embed(title=title, description=message, color=COLOR_ERROR)
        await self.send_embed(interaction, embed, ephemeral=True)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        embed = discord.Embed(title=title, description=message, color=COLOR_INFO)
        await self.send_embed(interaction, embed, ephemeral=True)

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        embed = discord.Embed(title=title, description=message, color=COLOR_WARNING)
        await self.send_embed(interaction, embed, ephemeral=True)


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = TriviaBot(config)

    try:
        logger.info("Starting Discord Trivia Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
