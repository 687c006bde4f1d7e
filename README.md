# chronoflow

chronoflow fetches a web page with a product table at a fixed interval. When
the page changes, it works out which products were added, removed, or changed
in price or quantity. It then sends a summary to every subscribed Telegram chat.

It keeps the hash of the last page it saw, the product list and the
subscriptions in a local SQLite file.

## Installation

```
pip install .
```

## Configuration

All settings come from environment variables with the `CF_` prefix. A
variable that is set but empty counts as unset and gets its default.

| Variable              | Required | Default              | Meaning                                               |
|-----------------------|----------|----------------------|-------------------------------------------------------|
| `CF_TELEGRAM_TOKEN`   | yes      |                      | Telegram bot token                                    |
| `CF_DEST_URL`         | no       |                      | Page that holds the `.table-bordered` product table   |
| `CF_ALLOWED_CHAT_IDS` | no       |                      | Chat IDs allowed to subscribe, separated by whitespace |
| `CF_ENV`              | no       | `production`         | `local`, `development` or `production`                |
| `CF_STORAGE_PATH`     | no       | `./chrono-flow.db`   | SQLite database file                                  |
| `CF_CHECK_INTERVAL`   | no       | `10m`                | Time between checks, such as `30s`, `10m`, `1h30m`    |
| `CF_TELEGRAM_TIMEOUT` | no       | `15s`                | Long-polling timeout for the bot                      |

Durations are written as one or more numbers with a unit each: `ns`, `us`,
`ms`, `s`, `m` or `h`, for example `1.5s` or `1h30m`. A number written with no
unit is read as nanoseconds. The check interval must be greater than zero.

`CF_ENV` sets how much is logged and in what form. All log output goes to
standard output.

- `local` logs debug messages and above as `key=value` text, with timestamps
  and source locations.
- `development` logs info messages and above as JSON lines.
- `production` logs warnings and above as JSON lines, without timestamps.
- Any other value logs only errors as JSON lines. It also logs one error
  saying that the environment was not recognised.

## Running

```
export CF_TELEGRAM_TOKEN=token
export CF_DEST_URL=https://shop.example.com/stock
export CF_ALLOWED_CHAT_IDS="-1001 -1002"
chronoflow
```

The first check runs right away, and then one runs every interval. Press
Ctrl+C, or send SIGTERM, to stop.

The command exits with status 1 in these cases:

- the configuration cannot be loaded;
- the interval is not positive;
- the database cannot be opened;
- the bot cannot authorise with Telegram.

On each check, the page is downloaded and hashed. If the hash matches the
stored one, nothing else happens. Otherwise the table rows are parsed and
compared with the stored products by model, and the new state is saved.
Rows must have exactly five cells: model, type, quantity, image URL and price.
Rows with any other number of cells are skipped.

## Bot commands

- `/start`, `/subscribe`: subscribe the chat to updates. This only works for
  chats listed in `CF_ALLOWED_CHAT_IDS`. In any other chat, the bot replies
  that it is private and then leaves the chat.
- `/unsubscribe`: stop receiving updates.

The bot receives commands by long polling. It has no webhook mode.

Notifications are sent in Markdown. They list added products with their price
and quantity, changed products with their old and new values, and removed
products. A message longer than Telegram's 4096-byte limit is cut short and
ends with a note that it was truncated.

## Library use

The parts can also be used on their own:

```python
import logging
from chronoflow.parser import Parser
from chronoflow.repository import Repository
from chronoflow.checker import Checker

log = logging.getLogger("chronoflow")
parser = Parser(log, "https://shop.example.com/stock")
with Repository.open("stock.db", log) as repo:
    changes = Checker(log, parser, repo).check_for_updates()
    if changes.has_changes():
        for product in changes.added:
            print("added", product.model, product.price)
```

Other useful pieces:

- `chronoflow.config.load_config(environ)` builds a `Config` from a mapping of
  environment variables. It raises `EmptyTokenError` or `ConfigError`.
- `chronoflow.config.parse_duration(text)` returns a `timedelta`.
- `chronoflow.checker.detect_changes(old_products, new_products)` compares two
  product lists and returns a `Changes`.
- `chronoflow.checker.calculate_hash(data)` returns the hex SHA-256 digest of
  `data`.
- `chronoflow.bot.Bot.format_changes_message(changes, today)` builds the
  notification text.
- `chronoflow.app.setup_logger(env, stream)` and
  `chronoflow.app.run_check(log, checker, notifier)` are the pieces the
  command is built from.

Failures are raised as exceptions:

- `ParserError` from the parser;
- `RepositoryError`, or `StateNotFoundError` when no state has been saved yet,
  from the repository;
- `CheckerError` from the checker;
- `BotError` from the bot.

## Tests

```
pip install ".[test]"
pytest
```