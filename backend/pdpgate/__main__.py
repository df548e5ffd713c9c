from pdpgate.cli import main

raise SystemExit(main())
