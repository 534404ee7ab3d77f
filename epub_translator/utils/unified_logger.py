"""
Unified console logging for the EPUB translator
Turns the pipeline's (key, message) log sink into colored, leveled console output
"""
import sys
import os
from datetime import datetime
from typing import Optional, Dict, Any, Callable, List
from enum import Enum


class LogLevel(Enum):
    """Log levels with priority values"""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class LogType(Enum):
    """Types of log messages for special handling"""
    GENERAL = "general"
    PROGRESS = "progress"
    TOKEN_USAGE = "token_usage"
    TRANSLATION_START = "translation_start"
    TRANSLATION_END = "translation_end"
    ERROR_DETAIL = "error_detail"


class Colors:
    """ANSI color codes for terminal output"""
    NO_COLOR = os.environ.get('NO_COLOR') is not None or not sys.stdout.isatty()

    YELLOW = '' if NO_COLOR else '\033[93m'
    WHITE = '' if NO_COLOR else '\033[97m'
    GRAY = '' if NO_COLOR else '\033[90m'
    GREEN = '' if NO_COLOR else '\033[92m'
    RED = '' if NO_COLOR else '\033[91m'
    ENDC = '' if NO_COLOR else '\033[0m'

    @classmethod
    def disable(cls):
        """Disable all colors"""
        cls.YELLOW = cls.WHITE = cls.GRAY = cls.GREEN = cls.RED = cls.ENDC = ''


# Sink keys whose messages are warnings or errors rather than plain info
_ERROR_KEY_MARKERS = ('error', 'failed', 'auth')
_WARNING_KEY_MARKERS = ('warning', 'unresolved', 'retry', 'cancel', 'skipped')


class UnifiedLogger:
    """
    Console logger shared by the CLI and the pipeline's log sink
    """

    def __init__(self,
                 name: str = "EpubTranslator",
                 console_output: bool = True,
                 enable_colors: bool = True,
                 min_level: LogLevel = LogLevel.INFO,
                 storage_callback: Optional[Callable[[Dict[str, Any]], None]] = None):
        """
        Args:
            name: Logger name/identifier
            console_output: Whether to output to console
            enable_colors: Whether to use colored output
            min_level: Minimum log level to display
            storage_callback: Receives every structured log entry (e.g. for tests)
        """
        self.name = name
        self.console_output = console_output
        self.enable_colors = enable_colors
        self.min_level = min_level
        self.storage_callback = storage_callback
        self.start_time: Optional[datetime] = None

        if not enable_colors:
            Colors.disable()

    def _format_timestamp(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _format_console_message(self, level: LogLevel, message: str,
                                log_type: LogType = LogType.GENERAL,
                                data: Optional[Dict[str, Any]] = None) -> str:
        """Format message for console output"""
        data = data or {}
        if log_type == LogType.PROGRESS:
            return self._format_progress(data)
        elif log_type == LogType.TRANSLATION_START:
            return self._format_translation_start(data)
        elif log_type == LogType.TRANSLATION_END:
            return self._format_translation_end(data)
        elif log_type == LogType.ERROR_DETAIL:
            return self._format_error_detail(message, data)
        elif log_type == LogType.TOKEN_USAGE:
            return (f"{Colors.GRAY}[TOKENS] prompt={data.get('prompt_tokens', 0)}, "
                    f"completion={data.get('completion_tokens', 0)}{Colors.ENDC}")

        level_colors = {
            LogLevel.DEBUG: Colors.GRAY,
            LogLevel.INFO: Colors.WHITE,
            LogLevel.WARNING: Colors.YELLOW,
            LogLevel.ERROR: Colors.RED,
        }
        color = level_colors.get(level, Colors.WHITE)
        level_str = f"[{level.name}] " if level != LogLevel.INFO else ""
        return f"{color}[{self._format_timestamp()}] {level_str}{message}{Colors.ENDC}"

    def _format_progress(self, data: Dict[str, Any]) -> str:
        percentage = float(data.get('percentage', 0))
        bar_length = 30
        filled = int(bar_length * percentage / 100)
        bar = '█' * filled + '░' * (bar_length - filled)
        return f"{Colors.WHITE}[{bar}] {percentage:.1f}%{Colors.ENDC}"

    def _format_translation_start(self, data: Dict[str, Any]) -> str:
        self.start_time = datetime.now()
        output = [f"{Colors.YELLOW}TRANSLATION STARTED{Colors.ENDC}"]
        output.append(f"{Colors.WHITE}Input: {data.get('input_file', 'Unknown')}{Colors.ENDC}")
        output.append(f"{Colors.WHITE}Languages: {data.get('source_lang', '?')} → {data.get('target_lang', '?')}{Colors.ENDC}")
        output.append(f"{Colors.GRAY}Provider: {data.get('provider', 'Unknown')}{Colors.ENDC}")
        return '\n'.join(output)

    def _format_translation_end(self, data: Dict[str, Any]) -> str:
        output = [f"\n{Colors.WHITE}TRANSLATION COMPLETE{Colors.ENDC}"]
        if self.start_time:
            output.append(f"{Colors.GRAY}Duration: {datetime.now() - self.start_time}{Colors.ENDC}")
        if 'output_file' in data:
            output.append(f"{Colors.WHITE}Output saved to: {data['output_file']}{Colors.ENDC}")
        stats = data.get('stats') or {}
        for label, key in (("Documents translated", 'documents_translated'),
                           ("Fragments translated", 'fragments_translated'),
                           ("Backend calls", 'backend_calls'),
                           ("Cache hits", 'cache_hits')):
            if key in stats:
                output.append(f"{Colors.WHITE}{label}: {stats[key]}{Colors.ENDC}")
        if stats.get('fragments_unresolved'):
            output.append(f"{Colors.YELLOW}Fragments kept in source language: {stats['fragments_unresolved']}{Colors.ENDC}")
        if stats.get('documents_failed'):
            output.append(f"{Colors.YELLOW}Documents copied untranslated: {stats['documents_failed']}{Colors.ENDC}")
        return '\n'.join(output)

    def _format_error_detail(self, message: str, data: Dict[str, Any]) -> str:
        output = [f"{Colors.RED}[{self._format_timestamp()}] ERROR: {message}{Colors.ENDC}"]
        if 'details' in data:
            output.append(f"{Colors.RED}Details: {data['details']}{Colors.ENDC}")
        if 'document' in data:
            output.append(f"{Colors.RED}Document: {data['document']}{Colors.ENDC}")
        return '\n'.join(output)

    def log(self, level: LogLevel, message: str,
            log_type: LogType = LogType.GENERAL,
            data: Optional[Dict[str, Any]] = None):
        """
        Main logging method

        Args:
            level: Log level
            message: Log message
            log_type: Type of log for special formatting
            data: Additional data for the log entry
        """
        if level.value < self.min_level.value:
            return

        if self.console_output:
            try:
                console_msg = self._format_console_message(level, message, log_type, data)
            except (KeyError, TypeError, ValueError):
                console_msg = f"[{self._format_timestamp()}] {message}"
            if console_msg:
                try:
                    print(console_msg, flush=True)
                except UnicodeEncodeError:
                    # Consoles without UTF-8 (cp1252 on Windows)
                    print(console_msg.encode('ascii', 'replace').decode('ascii'), flush=True)

        if self.storage_callback:
            self.storage_callback({
                'timestamp': datetime.now().isoformat(),
                'level': level.name,
                'type': log_type.value,
                'message': message,
                'data': data or {}
            })

    # Convenience methods
    def debug(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.DEBUG, message, log_type, data)

    def info(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.INFO, message, log_type, data)

    def warning(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.WARNING, message, log_type, data)

    def error(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.ERROR, message, log_type, data)

    def create_legacy_callback(self) -> Callable[[str, str], None]:
        """
        Adapt this logger to the pipeline's ``log_callback(key, message)`` sink.
        The level is derived from the key.
        """
        def legacy_callback(key: str, message: str = ""):
            text = message or key
            lowered = key.lower()
            if any(marker in lowered for marker in _ERROR_KEY_MARKERS):
                self.error(text)
            elif any(marker in lowered for marker in _WARNING_KEY_MARKERS):
                self.warning(text)
            elif lowered.startswith('debug'):
                self.debug(text)
            else:
                self.info(text)

        return legacy_callback

    def create_progress_callback(self, step: float = 10.0) -> Callable[[float], None]:
        """Progress sink that prints a bar every ``step`` percent."""
        last_printed = [-step]

        def progress_callback(percentage: float):
            if percentage >= 100 or percentage - last_printed[0] >= step:
                last_printed[0] = percentage
                self.log(LogLevel.INFO, "Progress Update", LogType.PROGRESS, {'percentage': percentage})

        return progress_callback


# Global logger instance
_global_logger = None


def get_logger(name: str = "EpubTranslator", **kwargs) -> UnifiedLogger:
    """
    Get or create the global logger instance
    """
    global _global_logger
    if _global_logger is None:
        _global_logger = UnifiedLogger(name, **kwargs)
    elif 'storage_callback' in kwargs:
        _global_logger.storage_callback = kwargs['storage_callback']
    return _global_logger


def setup_cli_logger(enable_colors: bool = True) -> UnifiedLogger:
    """Setup logger for CLI usage"""
    from epub_translator.config import DEBUG_MODE

    return get_logger(
        console_output=True,
        enable_colors=enable_colors,
        min_level=LogLevel.DEBUG if DEBUG_MODE else LogLevel.INFO
    )
