import logging
import os
from typing import Any, Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands

from .config_manager import ConfigManager
from .data_manager import DataManager, DataManagerError
from .models import Direction, SessionState
from .quiz_controller import QuizController, QuizControllerError
from .quiz_engine import QuizEngineError

logger = logging.getLogger(__name__)

# Errors raised by the quiz core for bad state or bad input
QUIZ_ERRORS = (QuizControllerError, QuizEngineError, DataManagerError, ValueError)

MAX_REVIEW_FIELDS = 20
# Discord rejects embeds whose title, description, fields and footer exceed this
MAX_EMBED_CHARS = 6000
FOOTER_RESERVE = 100
OPTION_MARKERS = ["1️⃣", "2️⃣", "3️⃣", "4️⃣"]


class QuizBot(commands.Bot):
    """Discord bot for practising the citizenship test"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        bot_config = (config or {}).get('bot')
        if isinstance(bot_config, dict):
            command_prefix = bot_config.get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None

        # One quiz attempt per Discord user; all share the data manager's pool
        self.quiz_controllers: Dict[int, QuizController] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.apply_configuration()

            self.data_manager = DataManager(self.config_manager.get_question_source())

            await self.load_question_data()
            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def apply_configuration(self):
        """Apply settings from configuration file to the config manager."""
        errors = self.config_manager.apply_config(self.app_config)
        if errors:
            logger.warning(f"Configuration applied with {len(errors)} rejected values")
        else:
            logger.info("Configuration applied successfully")

        for message in self.config_manager.get_user_friendly_validation_errors():
            logger.warning(message)

    async def load_question_data(self):
        """Load the question bank once at startup"""
        source = self.config_manager.get_question_source()
        try:
            pool = await self.data_manager.load_pool(source)
            logger.info(f"Loaded {len(pool)} questions from {source}")
        except DataManagerError as e:
            # Bot stays up; /start reports the error to users and /reload can retry
            logger.error(f"Error loading question data: {e}")

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="start", description="Start a new practice quiz")
        async def start_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @self.tree.command(name="question", description="Show the current question")
        async def question_command(interaction: discord.Interaction):
            await self.handle_question(interaction)

        @self.tree.command(name="answer", description="Choose an option (1-4) for the current or a given question")
        @app_commands.describe(option="Option number 1-4", question="Question number, defaults to the current one")
        async def answer_command(interaction: discord.Interaction, option: int, question: Optional[int] = None):
            await self.handle_answer(interaction, option, question)

        @self.tree.command(name="next", description="Go to the next question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_navigate(interaction, Direction.NEXT)

        @self.tree.command(name="previous", description="Go to the previous question")
        async def previous_command(interaction: discord.Interaction):
            await self.handle_navigate(interaction, Direction.PREVIOUS)

        @self.tree.command(name="goto", description="Jump to a question by number")
        async def goto_command(interaction: discord.Interaction, question: int):
            await self.handle_navigate(interaction, Direction.JUMP, question)

        @self.tree.command(name="finish", description="Submit your answers and see your score")
        async def finish_command(interaction: discord.Interaction):
            await self.handle_finish(interaction)

        @self.tree.command(name="results", description="Show the results of your finished quiz")
        async def results_command(interaction: discord.Interaction):
            await self.handle_results(interaction)

        @self.tree.command(name="reset", description="Discard the current quiz")
        async def reset_command(interaction: discord.Interaction):
            await self.handle_reset(interaction)

        @self.tree.command(name="status", description="Show your quiz progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="sections", description="List question sections in the bank")
        async def sections_command(interaction: discord.Interaction):
            await self.handle_sections(interaction)

        @self.tree.command(name="set_questions", description="Set the number of questions for the next quiz")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_set_questions(interaction, number)

        @self.tree.command(name="stratify", description="Always include a number of questions from one section")
        async def stratify_command(interaction: discord.Interaction, section: str, count: int):
            await self.handle_stratify(interaction, section, count)

        @self.tree.command(name="stratify_off", description="Draw questions from all sections evenly")
        async def stratify_off_command(interaction: discord.Interaction):
            await self.handle_stratify_off(interaction)

        @self.tree.command(name="reset_settings", description="Restore the configured quiz settings")
        async def reset_settings_command(interaction: discord.Interaction):
            await self.handle_reset_settings(interaction)

        @self.tree.command(name="reload", description="Reload the question bank")
        async def reload_command(interaction: discord.Interaction):
            await self.handle_reload(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def get_controller(self, user_id: int) -> QuizController:
        """
        Get the user's quiz controller, refreshing its pool when idle.

        Args:
            user_id: Discord user identifier

        Returns:
            The user's QuizController

        Raises:
            LoadError: If the question bank cannot be fetched
            ValidationError: If the question bank is invalid
        """
        controller = self.quiz_controllers.get(user_id)
        if controller is None:
            controller = QuizController(self.data_manager, self.config_manager)
            self.quiz_controllers[user_id] = controller

        if controller.state in (SessionState.IDLE, SessionState.READY):
            # Cached by the data manager, so this only fetches after /reload
            await controller.load_pool()

        return controller

    def build_question_embed(self, controller: QuizController, title: Optional[str] = None) -> discord.Embed:
        """Render the current question with its options"""
        session = controller.session
        question = controller.get_current_question()
        position = session.current_position
        chosen = session.answers[position]

        embed = discord.Embed(
            title=title or f"❓ Question {position + 1}/{session.total_questions}",
            description=f"**{question.text}**",
            color=0x6699ff
        )

        lines = []
        for index, option in enumerate(question.options):
            line = f"{OPTION_MARKERS[index]} {option}"
            if index == chosen:
                line += "  ⬅️ your answer"
            lines.append(line)
        embed.add_field(name="Options", value="\n".join(lines), inline=False)
        embed.add_field(name="Section", value=question.section, inline=True)
        embed.add_field(
            name="Progress",
            value=f"{session.answered_count}/{session.total_questions} answered",
            inline=True
        )
        embed.set_footer(text="Use /answer <1-4> to choose, /next and /previous to move, /finish when done")
        return embed

    def build_results_embed(self, results: Dict[str, Any]) -> discord.Embed:
        """Render the score and as much of the per-question review as fits"""
        ratio = results['score'] / results['total'] if results['total'] else 0
        if ratio >= 0.7:
            color = 0x00ff00
        elif ratio >= 0.5:
            color = 0xffaa00
        else:
            color = 0xff6600

        minutes, seconds = divmod(int(results['duration']), 60)
        embed = discord.Embed(
            title="🏁 Quiz Results",
            description=(
                f"**{results['score']} / {results['total']}**\n"
                f"{results['feedback']} ({results['percentage']}%)\n"
                f"⏱️ Completed in {minutes}m {seconds}s"
            ),
            color=color
        )

        review = results['review']
        shown = 0
        for item in review[:MAX_REVIEW_FIELDS]:
            lines = []
            for index, option in enumerate(item['options']):
                if index == item['correct_index']:
                    lines.append(f"✅ **{option}**")
                elif index == item['chosen_index']:
                    lines.append(f"❌ ~~{option}~~")
                else:
                    lines.append(f"▫️ {option}")
            mark = "✅" if item['is_correct'] else "❌"
            name = f"{mark} {item['position'] + 1}. {item['text']}"[:256]
            value = "\n".join(lines)[:1024]
            if len(embed) + len(name) + len(value) + FOOTER_RESERVE > MAX_EMBED_CHARS:
                break
            embed.add_field(name=name, value=value, inline=False)
            shown += 1

        if shown < len(review):
            embed.set_footer(text=f"Review shows the first {shown} of {len(review)} questions")
        else:
            embed.set_footer(text="Use /reset to try again with new questions")
        return embed

    def build_results_text(self, results: Dict[str, Any]) -> str:
        """Plain-text score used when the results embed cannot be sent"""
        wrong = [str(item['position'] + 1) for item in results['review'] if not item['is_correct']]
        text = (
            f"🏁 Quiz Results: {results['score']} / {results['total']} - "
            f"{results['feedback']} ({results['percentage']}%)"
        )
        if wrong:
            text += f"\nIncorrect: {', '.join(wrong)}"
        return text[:2000]

    async def send_results(self, interaction: discord.Interaction, controller: QuizController):
        """Send the results embed, falling back to plain text if Discord rejects it"""
        results = controller.get_results()
        try:
            await self._send_embed(interaction, self.build_results_embed(results))
        except discord.HTTPException as e:
            logger.error(f"Failed to send results embed: {e}")
            try:
                if interaction.response.is_done():
                    await interaction.followup.send(self.build_results_text(results), ephemeral=True)
                else:
                    await interaction.response.send_message(self.build_results_text(results), ephemeral=True)
            except discord.HTTPException:
                logger.error("Failed to send fallback results message")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎯 Citizenship Quiz Commands",
                description="Practise with multiple-choice questions drawn at random from the question bank",
                color=0x00ff00
            )

            help_embed.add_field(
                name="🎮 Taking a Quiz",
                value=(
                    "`/start` - Start a new quiz\n"
                    "`/question` - Show the current question\n"
                    "`/answer <option> [question]` - Choose an option (1-4)\n"
                    "`/next`, `/previous`, `/goto <n>` - Move between questions\n"
                    "`/finish` - Submit and see your score\n"
                    "`/results` - Show your last score again\n"
                    "`/reset` - Discard the current quiz\n"
                    "`/status` - Show your progress"
                ),
                inline=False
            )

            help_embed.add_field(
                name="📋 Settings",
                value=(
                    "`/set_questions <n>` - Number of questions per quiz\n"
                    "`/stratify <section> <count>` - Always include questions from a section\n"
                    "`/stratify_off` - Draw from all sections\n"
                    "`/reset_settings` - Restore the configured settings\n"
                    "`/sections` - List sections in the question bank\n"
                    "`/reload` - Reload the question bank"
                ),
                inline=False
            )

            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )

            await interaction.response.send_message(embed=help_embed)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help", "❌ Help Error")

    async def handle_start(self, interaction: discord.Interaction):
        """Handle /start command"""
        controller = None
        try:
            controller = await self.get_controller(interaction.user.id)
            session = controller.start_session()

            logger.info(f"User {interaction.user.id} started a quiz with {session.total_questions} questions")
            embed = self.build_question_embed(
                controller,
                title=f"🎯 Quiz Started! Question 1/{session.total_questions}"
            )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except QUIZ_ERRORS as e:
            await self.send_quiz_error(interaction, controller, e, "❌ Quiz Start Failed")

    async def handle_question(self, interaction: discord.Interaction):
        """Handle /question command"""
        controller = self.quiz_controllers.get(interaction.user.id)
        if controller is None or controller.state is not SessionState.ACTIVE:
            await self.send_info_response(interaction, "No quiz in progress. Start one with `/start`.")
            return

        await interaction.response.send_message(embed=self.build_question_embed(controller), ephemeral=True)

    async def handle_answer(self, interaction: discord.Interaction, option: int, question: Optional[int] = None):
        """Handle /answer command; answering the current question moves to the next one"""
        controller = self.quiz_controllers.get(interaction.user.id)
        try:
            if controller is None:
                await self.send_info_response(interaction, "No quiz in progress. Start one with `/start`.")
                return

            if question is None:
                position = controller.session.current_position if controller.session else 0
                controller.select_answer(position, option - 1)
                controller.navigate(Direction.NEXT)
            else:
                controller.select_answer(question - 1, option - 1)

            session = controller.session
            if controller.all_answered():
                embed = discord.Embed(
                    title="✅ All Questions Answered",
                    description=(
                        f"You have answered all {session.total_questions} questions.\n"
                        "Use `/finish` to see your score, or review with `/goto`."
                    ),
                    color=0x00ff00
                )
            else:
                embed = self.build_question_embed(controller)
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except QUIZ_ERRORS as e:
            await self.send_quiz_error(interaction, controller, e, "❌ Answer Not Recorded")

    async def handle_navigate(self, interaction: discord.Interaction, direction: Direction, question: Optional[int] = None):
        """Handle /next, /previous and /goto commands"""
        controller = self.quiz_controllers.get(interaction.user.id)
        try:
            if controller is None:
                await self.send_info_response(interaction, "No quiz in progress. Start one with `/start`.")
                return

            index = question - 1 if question is not None else None
            controller.navigate(direction, index)
            await interaction.response.send_message(embed=self.build_question_embed(controller), ephemeral=True)

        except QUIZ_ERRORS as e:
            await self.send_quiz_error(interaction, controller, e, "❌ Navigation Failed")

    async def handle_finish(self, interaction: discord.Interaction):
        """Handle /finish command"""
        controller = self.quiz_controllers.get(interaction.user.id)
        try:
            if controller is None:
                await self.send_info_response(interaction, "No quiz in progress. Start one with `/start`.")
                return

            if not controller.all_answered() and controller.state is SessionState.ACTIVE:
                numbers = ", ".join(str(index + 1) for index in controller.get_unanswered_indices())
                await self.send_warning_response(
                    interaction,
                    f"Please answer every question before finishing.\nUnanswered: {numbers}",
                    "⚠️ Quiz Not Complete"
                )
                return

            score = controller.finish()
            logger.info(f"User {interaction.user.id} finished a quiz with score {score}")
            await self.send_results(interaction, controller)

        except QUIZ_ERRORS as e:
            await self.send_quiz_error(interaction, controller, e, "❌ Finish Failed")

    async def handle_results(self, interaction: discord.Interaction):
        """Handle /results command"""
        controller = self.quiz_controllers.get(interaction.user.id)
        if controller is None or controller.state is not SessionState.SCORED:
            await self.send_info_response(interaction, "No finished quiz to show. Use `/finish` when all questions are answered.")
            return

        await self.send_results(interaction, controller)

    async def handle_reset_settings(self, interaction: discord.Interaction):
        """Handle /reset_settings command"""
        self.config_manager.reset_to_defaults()
        if self.app_config:
            # Defaults for this bot are the values in its config file
            self.apply_configuration()
        await self.send_info_response(
            interaction,
            f"```\n{self.config_manager.get_settings_summary()}\n```",
            "🔄 Settings Reset"
        )

    async def handle_reset(self, interaction: discord.Interaction):
        """Handle /reset command"""
        controller = self.quiz_controllers.get(interaction.user.id)
        try:
            if controller is None:
                await self.send_info_response(interaction, "No quiz to reset. Start one with `/start`.")
                return

            controller.reset()
            await self.send_info_response(
                interaction,
                "Quiz discarded. Use `/start` for a new set of questions.",
                "🔄 Quiz Reset"
            )

        except QUIZ_ERRORS as e:
            await self.send_quiz_error(interaction, controller, e, "❌ Reset Failed")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        controller = self.quiz_controllers.get(interaction.user.id)
        progress = controller.get_session_progress() if controller else None
        summary = self.data_manager.get_loading_summary()

        if progress is None:
            embed = discord.Embed(
                title="ℹ️ No Active Quiz",
                description="You have no quiz in progress.",
                color=0x6699ff
            )
            embed.add_field(
                name="📚 Question Bank",
                value=(
                    f"{summary['total_questions']} questions loaded"
                    if summary['loaded'] else "Not loaded yet"
                ),
                inline=False
            )
            if summary['has_errors']:
                embed.add_field(name="Loading Errors", value="\n".join(summary['errors'][:3])[:1024], inline=False)
            embed.add_field(name="🎯 Start a Quiz", value="Use `/start` to begin", inline=False)
            await interaction.response.send_message(embed=embed, ephemeral=True)
            return

        if progress['state'] == SessionState.SCORED.value:
            status_text = f"Finished - score {progress['score']}/{progress['total_questions']}"
            color = 0x00ff00
        else:
            status_text = "In progress"
            color = 0xffaa00

        embed = discord.Embed(title=f"📊 Quiz Status - {status_text}", color=color)
        embed.add_field(
            name="Progress",
            value=(
                f"Current question: {progress['current_question']}/{progress['total_questions']}\n"
                f"Answered: {progress['answered']}/{progress['total_questions']}"
            ),
            inline=True
        )
        if progress['unanswered'] and progress['state'] == SessionState.ACTIVE.value:
            unanswered = ", ".join(str(number) for number in progress['unanswered'][:25])
            embed.add_field(name="Unanswered", value=unanswered, inline=True)

        settings = progress['settings']
        if settings['stratify_category']:
            embed.add_field(
                name="⚙️ Sampling",
                value=f"{settings['stratify_count']} from {settings['stratify_category']} + {settings['question_count']} others",
                inline=False
            )
        embed.set_footer(text="Use /help to see all available commands")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_sections(self, interaction: discord.Interaction):
        """Handle /sections command"""
        sections = self.data_manager.get_sections()
        if not sections:
            await self.send_info_response(interaction, "The question bank is not loaded. Try `/reload`.")
            return

        lines = [f"• {name}: {count}" for name, count in sections.items()]
        embed = discord.Embed(
            title="📚 Question Sections",
            description="\n".join(lines)[:4096],
            color=0x6699ff
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_set_questions(self, interaction: discord.Interaction, number: int):
        """Handle /set_questions command"""
        result = self.config_manager.set_question_count(number)
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "✅ Settings Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")

    async def handle_stratify(self, interaction: discord.Interaction, section: str, count: int):
        """Handle /stratify command"""
        sections = self.data_manager.get_sections()
        if sections and section not in sections:
            await self.send_error_response(
                interaction,
                f"Unknown section '{section}'. Available: {', '.join(sections)}",
                "❌ Invalid Setting"
            )
            return

        result = self.config_manager.set_stratify(section, count)
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "✅ Settings Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")

    async def handle_stratify_off(self, interaction: discord.Interaction):
        """Handle /stratify_off command"""
        result = self.config_manager.clear_stratify()
        await self.send_info_response(interaction, result['user_message'], "✅ Settings Updated")

    async def handle_reload(self, interaction: discord.Interaction):
        """Handle /reload command"""
        try:
            pool = await self.data_manager.load_pool(self.config_manager.get_question_source(), refresh=True)
            await self.send_info_response(
                interaction,
                f"Loaded {len(pool)} questions. New quizzes will use the updated bank.",
                "🔄 Questions Reloaded"
            )
        except DataManagerError as e:
            await self.send_quiz_error(interaction, None, e, "❌ Reload Failed")

    async def send_quiz_error(
        self,
        interaction: discord.Interaction,
        controller: Optional[QuizController],
        error: Exception,
        title: str
    ):
        """Turn a quiz core error into a user-facing message"""
        logger.info(f"Quiz operation rejected for user {interaction.user.id}: {error}")
        if controller is None:
            controller = QuizController(self.data_manager, self.config_manager)
        await self.send_error_response(interaction, controller.get_user_friendly_error_message(error), title)

    async def _send_embed(self, interaction: discord.Interaction, embed: discord.Embed):
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user with plain-text fallback"""
        embed = discord.Embed(title=title, description=message[:4096], color=0xff0000)
        embed.set_footer(text="If this error persists, try using /help for available commands")
        try:
            await self._send_embed(interaction, embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send error embed: {e}")
            try:
                simple_message = f"{title}: {message}"[:2000]
                if interaction.response.is_done():
                    await interaction.followup.send(simple_message, ephemeral=True)
                else:
                    await interaction.response.send_message(simple_message, ephemeral=True)
            except discord.HTTPException:
                logger.error("Failed to send fallback error message")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            await self._send_embed(interaction, discord.Embed(title=title, description=message, color=0x6699ff))
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        try:
            await self._send_embed(interaction, discord.Embed(title=title, description=message, color=0xffaa00))
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Citizenship Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
