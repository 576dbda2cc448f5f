from llmchat.cli.main import main


main()
