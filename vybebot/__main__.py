from vybebot.bot import run

run()
