"""支持 python -m scm_checkout 调用"""

from scm_checkout.cli import main

if __name__ == "__main__":
    main()
