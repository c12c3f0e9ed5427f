"""指令列直譯模組。

將原始指令列拆成指令輸入與結尾的輸出重導向，
並以 POSIX shell 的引號規則將指令輸入斷詞。
"""

from __future__ import annotations

import logging
import re
import shlex

from virtual_shell.types import ParsedCommandLine, TokenizedCommand

logger = logging.getLogger(__name__)

# 只辨識單一個位於行尾的重導向；運算子後必須有目標檔案，且目標不能以 > 開頭
_REDIRECTION_PATTERN = re.compile(r'^(.*?)\s*(>>|>)\s*([^\s>]\S*)$', re.DOTALL)

# shlex 會將這些字元組成的 token 視為運算子
_OPERATOR_CHARS = frozenset('();<>|&')


def is_invalid_command(line: object) -> bool:
    """指令列不是字串或只有空白時視為無效。"""
    return not isinstance(line, str) or line.strip() == ''


def parse(line: str) -> ParsedCommandLine:
    """解析指令列結尾的輸出重導向。

    Args:
        line: 原始指令列

    Returns:
        指令輸入與重導向資訊；沒有重導向時兩個重導向欄位皆為 None
    """
    match = _REDIRECTION_PATTERN.match(line)
    if match is None:
        return ParsedCommandLine(command_input=line.strip())

    command_input, operator, target_file = match.groups()
    parsed = ParsedCommandLine(
        command_input=command_input.strip(),
        redirection_operator=operator,
        target_file=target_file,
    )
    logger.debug(
        '偵測到輸出重導向',
        extra={'operator': operator, 'target_file': target_file},
    )
    return parsed


def _is_operator(token: str) -> bool:
    return bool(token) and all(char in _OPERATOR_CHARS for char in token)


def tokenize(command_input: str) -> TokenizedCommand:
    """以 shell 引號規則斷詞。

    glob 樣式保留原始文字，運算子化為其字串；空 token 會被丟棄。
    第一個 token 若是運算子，指令名稱為空字串。

    Raises:
        ValueError: 引號未閉合等語法錯誤
    """
    lexer = shlex.shlex(command_input, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    tokens = list(lexer)

    if not tokens:
        return TokenizedCommand(name='')

    first, rest = tokens[0], tokens[1:]
    name = '' if _is_operator(first) else first
    args = tuple(token for token in rest if token != '')
    return TokenizedCommand(name=name, args=args)
