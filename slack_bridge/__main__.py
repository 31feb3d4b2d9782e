from slack_bridge.server import main

main()
