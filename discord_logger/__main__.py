from discord_logger.app import main

main()
