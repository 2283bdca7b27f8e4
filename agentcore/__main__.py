from agentcore.main import main

main()
