"""
Package wide logger with colored, level-tagged output.
"""

import logging
from typing import Union


### CLASSES ###
class c:
  """Terminal colors class"""

  _ = "\033[0m"  # reset terminal
  p = "\033[38;5;204m"  # pink
  b = "\033[38;5;295m"  # blue
  g = "\033[38;5;47m"  # green
  grey = "\033[90m"  # grey
  r = "\033[38;5;1m"  # red
  br = "\x1b[31;1m"  # boldred
  y = "\033[38;5;226m"  # yellow


class FoldingLogFormatter(logging.Formatter):
  """Formatter that tags every record with its severity.

  NOTE:
    ``[+] logging.DEBUG``: Per step progress, loaded tables, geometry details

    ``[*] logging.INFO``: Simulation started / finished, data sources loaded

    ``[-] logging.WARNING``: Missing optional data (e.g. a Ramachandran table for one residue type)

    ``[!] logging.ERROR``: A simulation failed, the originating error is re-raised afterwards

    ``[!] logging.CRITICAL``: Unused by the library itself, reserved for callers
  """

  log_format_detailed = f"{c.grey}%(asctime)s{c._} %(message)s {c.p}(%(filename)s:%(lineno)d){c._}"
  log_format_basic = "%(message)s"

  FORMATS = {
    logging.DEBUG: f"{c.g}[+]{c._} {log_format_basic}",
    logging.INFO: f"{c.b}[*]{c._} {log_format_basic}",
    logging.WARNING: f"{c.y}[-]{c._} {log_format_detailed}",
    logging.ERROR: f"{c.r}[!]{c._} {log_format_detailed}",
    logging.CRITICAL: f"{c.br}[!]{c._} {log_format_detailed}",
  }
  """:meta private:"""

  def format(self, record):
    formatter = logging.Formatter(self.FORMATS.get(record.levelno, self.log_format_basic))
    return formatter.format(record)


### FUNCTIONS ###
def set_verbosity(level: Union[int, str]):
  """Change how chatty the package logger and its console handler are.

  Parameters:
    level: Logging level, either an int like ``logging.INFO`` or its name (``"INFO"``)

  """
  if isinstance(level, str):
    level = logging.getLevelName(level.upper())
    if not isinstance(level, int):
      raise ValueError(f"Unknown logging level {level}")
  logger.setLevel(level)
  for handler in logger.handlers:
    handler.setLevel(level)


logger = logging.getLogger("peptidefold")
logger.setLevel(logging.DEBUG)

# create console handler with a higher log level
ch = logging.StreamHandler()
ch.setLevel(logging.DEBUG)
ch.setFormatter(FoldingLogFormatter())
logger.addHandler(ch)
